import logging

import pytest

from scorekeeper.services.games.stages import (
    DECREMENT,
    FIXED,
    INCREMENT,
    ROUND_CONFIGS,
    CardRule,
    StageConfig,
    StageSpec,
    StageType,
    describe_stage,
    max_cards_for_player_count,
    parse_stage_types,
    preset_stage_types,
    resolve_stage_config,
    stage_types_for_config,
)


@pytest.mark.parametrize('deck, players, expected', [
    (36, 2, 18), (36, 3, 12), (36, 4, 9), (36, 5, 7), (36, 6, 6),
    (54, 2, 26), (54, 3, 17), (54, 4, 13), (54, 5, 10), (54, 6, 8),
])
def test_max_cards_table(deck, players, expected):
    assert max_cards_for_player_count(players, deck) == expected


def test_max_cards_falls_back_for_unknown_inputs():
    assert max_cards_for_player_count(7, 36) == 9
    assert max_cards_for_player_count(4, 52) == 9


def test_builtin_config_for_four_players():
    config = resolve_stage_config(4, 36)
    assert not config.custom
    assert config.total_rounds == 30
    assert [s.round_count for s in config.stages] == [4, 7, 4, 7, 4, 4]
    first = config.stages[0]
    assert first.card_rule == CardRule.fixed(1)
    assert first.stage_type is StageType.GOLDEN
    assert config.stages[1].card_rule.kind == INCREMENT
    assert config.stages[3].card_rule.kind == DECREMENT
    assert config.stages[5].blind


@pytest.mark.parametrize('deck', [36, 54])
@pytest.mark.parametrize('players', [2, 3, 4, 5, 6])
def test_builtin_configs_are_valid(deck, players):
    config = resolve_stage_config(players, deck)
    assert len(config.stages) == 6
    assert config.total_rounds == sum(rows[0] for rows in ROUND_CONFIGS[deck][players])
    max_cards = max_cards_for_player_count(players, deck)
    for stage in config.stages:
        if stage.card_rule.kind == FIXED:
            assert 1 <= stage.card_rule.cards <= max_cards


def test_missing_builtin_combination_logs_and_falls_back(caplog):
    with caplog.at_level(logging.WARNING):
        config = resolve_stage_config(7, 36)
    assert config.total_rounds == 30
    assert 'no built-in configuration' in caplog.text


def test_custom_stages_recompute_round_counts():
    config = resolve_stage_config(4, 36, ['golden', 'rising', 'full', 'decreasing', 'blind'])
    assert config.custom
    assert [s.round_count for s in config.stages] == [4, 8, 4, 8, 4]
    assert config.stages[0].card_rule == CardRule.fixed(1)
    assert config.stages[2].card_rule == CardRule.fixed(9)
    assert config.stages[4].card_rule == CardRule.fixed(9)
    assert config.stages[4].blind
    assert config.total_rounds == 28


def test_custom_stage_round_count_is_clamped_to_player_range():
    config = resolve_stage_config(2, 54, ['golden', 'rising'])
    assert [s.round_count for s in config.stages] == [2, 25]


def test_empty_custom_stages_use_builtin_table():
    assert resolve_stage_config(4, 36, []) == resolve_stage_config(4, 36)


def test_parse_stage_types_accepts_editor_entries():
    parsed = parse_stage_types(['golden', {'type': 'Blind', 'rounds': 3}, StageType.FULL])
    assert parsed == (StageType.GOLDEN, StageType.BLIND, StageType.FULL)


def test_parse_stage_types_rejects_unknown_type():
    with pytest.raises(ValueError, match='unknown stage type'):
        parse_stage_types(['golden', 'sideways'])


def test_stage_and_config_reject_empty_shapes():
    with pytest.raises(ValueError):
        StageSpec(0, CardRule.fixed(1))
    with pytest.raises(ValueError):
        StageConfig(())
    with pytest.raises(ValueError):
        CardRule.fixed(0)


def test_presets():
    assert preset_stage_types('default', 4, 36) == [
        'golden', 'rising', 'full', 'decreasing', 'golden', 'blind',
    ]
    assert preset_stage_types('golden', 4, 36) == ['golden', 'golden', 'golden', 'blind']
    assert preset_stage_types('simple', 4, 36)[-1] == 'golden'
    with pytest.raises(ValueError):
        preset_stage_types('marathon', 4, 36)


def test_stage_types_round_trip_through_custom_config():
    types = stage_types_for_config(resolve_stage_config(5, 36))
    config = resolve_stage_config(5, 36, types)
    assert [s.stage_type.value for s in config.stages] == types


def test_describe_stage():
    config = resolve_stage_config(4, 36)
    assert describe_stage(config.stages[0], 9) == '4 rounds with 1 card'
    assert describe_stage(config.stages[1], 9) == '7 rounds incrementing 2->8'
    assert describe_stage(config.stages[3], 9) == '7 rounds decrementing 9->3'
    assert describe_stage(config.stages[5], 9) == '4 rounds with 9 cards (blind)'
