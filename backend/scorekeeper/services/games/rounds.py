"""Round calculator: where a round sits in the stage sequence and its hand size.

Both the console and the visualizer go through these functions, so stage
boundaries are computed in exactly one place.
"""

from typing import NamedTuple

from .stages import DECREMENT, INCREMENT, StageConfig


class RoundOutOfRange(ValueError):
    pass


class StageInfo(NamedTuple):
    stage: int               # 1-based stage number
    round_within_stage: int  # 1-based position inside the stage
    stage_length: int

    @property
    def index(self) -> int:
        return self.stage - 1

    def to_dict(self):
        return {
            'stage': self.stage,
            'round_within_stage': self.round_within_stage,
            'stage_length': self.stage_length,
        }


def total_rounds(config: StageConfig) -> int:
    return config.total_rounds


def is_game_over(round_number: int, config: StageConfig) -> bool:
    return round_number > config.total_rounds


def stage_info(round_number: int, config: StageConfig) -> StageInfo:
    if round_number < 1:
        raise RoundOutOfRange(f'round numbers start at 1, got {round_number}')
    rounds_before = 0
    for number, stage in enumerate(config.stages, start=1):
        if round_number <= rounds_before + stage.round_count:
            return StageInfo(number, round_number - rounds_before, stage.round_count)
        rounds_before += stage.round_count
    raise RoundOutOfRange(f'round {round_number} is past the last round ({rounds_before})')


def cards_per_hand(round_number: int, config: StageConfig, max_cards: int) -> int:
    info = stage_info(round_number, config)
    rule = config.stages[info.index].card_rule
    if rule.kind == INCREMENT:
        return info.round_within_stage + 1
    if rule.kind == DECREMENT:
        return max_cards - info.round_within_stage + 1
    return rule.cards


def card_schedule(config: StageConfig, max_cards: int):
    """Hand size for every round of the game, in order."""
    return [cards_per_hand(n, config, max_cards) for n in range(1, config.total_rounds + 1)]
