"""Stage configuration resolver.

A game is a sequence of stages. Each stage lasts a number of rounds and has
a card rule: a fixed hand size, a hand that grows by one card per round
starting at two, or a hand that shrinks by one card per round from the
maximum. The stage list comes either from the built-in table keyed by deck
size and player count, or from a custom list of stage types saved from the
stage editor.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

DECK_SIZES = (36, 54)
DEFAULT_DECK_SIZE = 36
DEFAULT_PLAYER_COUNT = 4

# Largest hand each player can be dealt, by deck size then player count
MAX_CARDS = {
    36: {2: 18, 3: 12, 4: 9, 5: 7, 6: 6},
    54: {2: 26, 3: 17, 4: 13, 5: 10, 6: 8},
}

FIXED = 'fixed'
INCREMENT = 'increment'
DECREMENT = 'decrement'


class StageType(str, enum.Enum):
    GOLDEN = 'golden'
    RISING = 'rising'
    FULL = 'full'
    DECREASING = 'decreasing'
    BLIND = 'blind'


@dataclass(frozen=True)
class CardRule:
    kind: str
    cards: Optional[int] = None

    @classmethod
    def fixed(cls, cards: int) -> 'CardRule':
        if cards < 1:
            raise ValueError(f'fixed card rule needs at least 1 card, got {cards}')
        return cls(FIXED, cards)

    @classmethod
    def increment(cls) -> 'CardRule':
        return cls(INCREMENT)

    @classmethod
    def decrement(cls) -> 'CardRule':
        return cls(DECREMENT)

    def to_dict(self):
        # Same shape as the stored table: a number for fixed, else the rule name
        return self.cards if self.kind == FIXED else self.kind


@dataclass(frozen=True)
class StageSpec:
    round_count: int
    card_rule: CardRule
    stage_type: Optional[StageType] = None
    blind: bool = False

    def __post_init__(self):
        if self.round_count < 1:
            raise ValueError(f'a stage needs at least 1 round, got {self.round_count}')

    def to_dict(self):
        return {
            'rounds': self.round_count,
            'cards': self.card_rule.to_dict(),
            'type': self.stage_type.value if self.stage_type else None,
            'blind': self.blind,
        }


@dataclass(frozen=True)
class StageConfig:
    stages: Tuple[StageSpec, ...]
    custom: bool = False

    def __post_init__(self):
        if not self.stages:
            raise ValueError('a stage configuration needs at least one stage')

    @property
    def total_rounds(self) -> int:
        return sum(stage.round_count for stage in self.stages)

    def to_dict(self):
        return {
            'total_rounds': self.total_rounds,
            'custom': self.custom,
            'stages': [stage.to_dict() for stage in self.stages],
        }


# Position of each stage in the standard six-stage layout
STANDARD_LAYOUT = (
    StageType.GOLDEN,
    StageType.RISING,
    StageType.FULL,
    StageType.DECREASING,
    StageType.GOLDEN,
    StageType.BLIND,
)

# (rounds, cards) per stage; cards is a hand size or a rule name
ROUND_CONFIGS = {
    36: {
        2: ((2, 1), (17, INCREMENT), (2, 18), (17, DECREMENT), (2, 1), (2, 18)),
        3: ((3, 1), (9, INCREMENT), (3, 11), (9, DECREMENT), (3, 1), (3, 11)),
        4: ((4, 1), (7, INCREMENT), (4, 9), (7, DECREMENT), (4, 1), (4, 9)),
        5: ((5, 1), (5, INCREMENT), (5, 7), (5, DECREMENT), (5, 1), (5, 7)),
        6: ((6, 1), (4, INCREMENT), (6, 6), (4, DECREMENT), (6, 1), (6, 6)),
    },
    54: {
        2: ((2, 1), (24, INCREMENT), (2, 26), (24, DECREMENT), (2, 1), (2, 26)),
        3: ((3, 1), (15, INCREMENT), (3, 17), (15, DECREMENT), (3, 1), (3, 17)),
        4: ((4, 1), (11, INCREMENT), (4, 13), (11, DECREMENT), (4, 1), (4, 13)),
        5: ((5, 1), (8, INCREMENT), (5, 10), (8, DECREMENT), (5, 1), (5, 10)),
        6: ((6, 1), (6, INCREMENT), (6, 8), (6, DECREMENT), (6, 1), (6, 8)),
    },
}

# Stage editor presets; 'default' is the built-in table for the roster
PRESETS = {
    'golden': (StageType.GOLDEN, StageType.GOLDEN, StageType.GOLDEN, StageType.BLIND),
    'simple': (StageType.GOLDEN, StageType.RISING, StageType.FULL, StageType.DECREASING, StageType.GOLDEN),
    'custom': STANDARD_LAYOUT,
}


def max_cards_for_player_count(player_count: int, deck_size: int = DEFAULT_DECK_SIZE) -> int:
    table = MAX_CARDS.get(deck_size, MAX_CARDS[DEFAULT_DECK_SIZE])
    return table.get(player_count, table[DEFAULT_PLAYER_COUNT])


def rounds_for_stage_type(stage_type: StageType, player_count: int, deck_size: int = DEFAULT_DECK_SIZE) -> int:
    if stage_type in (StageType.RISING, StageType.DECREASING):
        return max_cards_for_player_count(player_count, deck_size) - 1
    return max(2, min(6, player_count))


def card_rule_for_stage_type(stage_type: StageType, max_cards: int) -> CardRule:
    if stage_type is StageType.GOLDEN:
        return CardRule.fixed(1)
    if stage_type is StageType.RISING:
        return CardRule.increment()
    if stage_type is StageType.DECREASING:
        return CardRule.decrement()
    return CardRule.fixed(max_cards)


def parse_stage_types(values) -> Tuple[StageType, ...]:
    """Read a stored custom stage list.

    Entries may be plain type names or ``{'type': ..., 'rounds': ...}``
    dicts as saved by the stage editor; stored round counts are ignored
    because they are always recomputed from the roster.
    """
    parsed = []
    for value in values or ():
        name = value.get('type') if isinstance(value, dict) else value
        if isinstance(name, StageType):
            parsed.append(name)
            continue
        try:
            parsed.append(StageType(str(name).strip().lower()))
        except ValueError:
            raise ValueError(f'unknown stage type: {name!r}') from None
    return tuple(parsed)


def _builtin_config(player_count: int, deck_size: int) -> StageConfig:
    rows = ROUND_CONFIGS.get(deck_size, {}).get(player_count)
    if rows is None:
        logger.warning(
            '[stages] no built-in configuration for players=%s deck=%s, falling back to %s players/%s cards',
            player_count, deck_size, DEFAULT_PLAYER_COUNT, DEFAULT_DECK_SIZE,
        )
        rows = ROUND_CONFIGS[DEFAULT_DECK_SIZE][DEFAULT_PLAYER_COUNT]
    stages = []
    for position, (rounds, cards) in enumerate(rows):
        if cards == INCREMENT:
            rule = CardRule.increment()
        elif cards == DECREMENT:
            rule = CardRule.decrement()
        else:
            rule = CardRule.fixed(cards)
        stage_type = STANDARD_LAYOUT[position] if position < len(STANDARD_LAYOUT) else None
        stages.append(StageSpec(rounds, rule, stage_type, blind=stage_type is StageType.BLIND))
    return StageConfig(tuple(stages))


def resolve_stage_config(player_count: int, deck_size: int = DEFAULT_DECK_SIZE,
                         custom_stages: Optional[Sequence] = None) -> StageConfig:
    """Build the stage sequence for a roster size and deck."""
    stage_types = parse_stage_types(custom_stages) if custom_stages else ()
    if not stage_types:
        return _builtin_config(player_count, deck_size)

    max_cards = max_cards_for_player_count(player_count, deck_size)
    stages = tuple(
        StageSpec(
            rounds_for_stage_type(stage_type, player_count, deck_size),
            card_rule_for_stage_type(stage_type, max_cards),
            stage_type,
            blind=stage_type is StageType.BLIND,
        )
        for stage_type in stage_types
    )
    return StageConfig(stages, custom=True)


def stage_types_for_config(config: StageConfig):
    """Editable stage type names for a resolved configuration."""
    return [(stage.stage_type or StageType.GOLDEN).value for stage in config.stages]


def preset_stage_types(preset: str, player_count: int, deck_size: int = DEFAULT_DECK_SIZE):
    if preset == 'default':
        return stage_types_for_config(_builtin_config(player_count, deck_size))
    try:
        return [stage_type.value for stage_type in PRESETS[preset]]
    except KeyError:
        raise ValueError(f'unknown preset: {preset!r}') from None


def describe_stage(stage: StageSpec, max_cards: int) -> str:
    rounds = stage.round_count
    rule = stage.card_rule
    if rule.kind == INCREMENT:
        return f'{rounds} rounds incrementing 2->{rounds + 1}'
    if rule.kind == DECREMENT:
        return f'{rounds} rounds decrementing {max_cards}->{max_cards - rounds + 1}'
    noun = 'card' if rule.cards == 1 else 'cards'
    text = f'{rounds} rounds with {rule.cards} {noun}'
    if stage.blind:
        text += ' (blind)'
    return text
