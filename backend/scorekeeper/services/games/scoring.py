import enum
from dataclasses import dataclass
from typing import Iterable, Optional

# Stages scored with the one-card table (the golden bookends and the blind stage)
EDGE_STAGES = frozenset({1, 5, 6})

BLIND_MULTIPLIER = 2


class SpecialGame(str, enum.Enum):
    DARK = 'dark'
    GOLDEN = 'golden'
    MISER = 'miser'
    NO_TRUMP = 'noTrump'
    FRONTAL = 'frontal'


SPECIAL_GAME_LABELS = {
    SpecialGame.DARK: 'Dark',
    SpecialGame.GOLDEN: 'Golden',
    SpecialGame.MISER: 'Miser',
    SpecialGame.NO_TRUMP: 'No Trump',
    SpecialGame.FRONTAL: 'Frontal',
}


@dataclass(frozen=True)
class PlayerScore:
    player: str
    points: int

    def to_dict(self):
        return {'player': self.player, 'points': self.points}


def parse_special_game(value) -> Optional[SpecialGame]:
    if value is None or value == '':
        return None
    if isinstance(value, SpecialGame):
        return value
    try:
        return SpecialGame(value)
    except ValueError:
        raise ValueError(f'unknown special game: {value!r}') from None


def is_edge_stage(stage: int) -> bool:
    return stage in EDGE_STAGES


def base_score(bid: int, tricks: int, stage: int) -> int:
    if is_edge_stage(stage):
        if bid == 1:
            if tricks == 1:
                return 30
            if tricks == 0:
                return -30
        elif bid == 0:
            if tricks == 0:
                return 15
            if tricks == 1:
                return 5
        return 0

    if bid == 0:
        return 5 if tricks == 0 else 1
    if tricks == bid:
        return tricks * 10
    if tricks > bid:
        return tricks
    # Missing the bid costs the whole bid, however many tricks were short
    return -bid * 10


def score_player(bid: int, tricks: int, stage: int, special_game=None, blind: bool = False) -> int:
    special = parse_special_game(special_game)
    if special is SpecialGame.GOLDEN:
        points = tricks * 10
    elif special is SpecialGame.MISER:
        points = -tricks * 10
    else:
        points = base_score(bid, tricks, stage)
    if blind:
        points *= BLIND_MULTIPLIER
    return points


def score_round(results: Iterable, stage: int, special_game=None, blind_bidders=()) -> list:
    """Points for every player in a closed round.

    ``results`` holds ``(player, bid, tricks)`` entries, either as mappings
    or objects with those attributes. ``stage`` is the 1-based stage number
    from the round calculator, not the round number.
    """
    blind = set(blind_bidders or ())
    scores = []
    for result in results:
        if isinstance(result, dict):
            player, bid, tricks = result['player'], result['bid'], result['tricks']
        else:
            player, bid, tricks = result.player, result.bid, result.tricks
        points = score_player(bid, tricks, stage, special_game, player in blind)
        scores.append(PlayerScore(player, points))
    return scores


def scoring_rules_text(stage: int) -> str:
    if is_edge_stage(stage):
        prefix = f'Stage {stage}'
        if stage == 6:
            prefix += ' (blind)'
        return (
            f'{prefix}: bid 1 won 1 = +30 | bid 1 won 0 = -30 | '
            'bid 0 won 0 = +15 | bid 0 won 1 = +5'
        )
    return (
        f'Stage {stage}: exact bid = +10 per trick | over = +1 per trick | '
        'under = -10 per bid trick | bid 0 won 0 = +5 | bid 0 won any = +1'
    )
