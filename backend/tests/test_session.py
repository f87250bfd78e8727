import logging

import pytest

from scorekeeper.errors import InvalidTransition, SessionLocked, ValidationRejected
from scorekeeper.services.games.session import (
    BIDDING,
    FINISHED,
    IN_PROGRESS,
    SETUP,
    TIE,
    TRICKS,
    GameSession,
    compute_winner,
)

PLAYERS = ['Ann', 'Bob', 'Cid', 'Dee']


@pytest.fixture()
def session():
    game = GameSession.create(PLAYERS)
    game.start()
    return game


def play_round(game, bids, tricks):
    game.set_bids(bids)
    game.switch_to_tricks()
    game.set_all_tricks(tricks)
    return game.close_round()


def test_create_and_start():
    game = GameSession.create(PLAYERS, deck_size=54)
    assert game.status == SETUP
    assert game.open_round is None
    game.start()
    assert game.status == IN_PROGRESS
    assert game.phase == BIDDING
    assert game.current_round == 1
    assert game.cards_per_hand == 1
    assert game.max_cards == 13
    assert game.scores == {p: 0 for p in PLAYERS}
    assert game.dealer == 'Ann'
    assert game.first_player == 'Bob'
    assert set(game.open_round) == set(PLAYERS)


def test_start_needs_two_players():
    game = GameSession.create(['Solo'])
    with pytest.raises(ValidationRejected) as exc:
        game.start()
    assert exc.value.reason == 'not_enough_players'
    assert game.status == SETUP


def test_start_twice_is_invalid(session):
    with pytest.raises(InvalidTransition):
        session.start()


@pytest.mark.parametrize('players', [['Ann', 'Ann'], ['Ann', '  ']])
def test_roster_rejects_duplicates_and_blanks(players):
    with pytest.raises(ValidationRejected) as exc:
        GameSession.create(players)
    assert exc.value.reason == 'invalid_roster'


def test_rejects_unknown_deck_size():
    with pytest.raises(ValidationRejected) as exc:
        GameSession.create(PLAYERS, deck_size=52)
    assert exc.value.reason == 'invalid_deck_size'


def test_first_round_closes_and_advances(session):
    record = play_round(
        session,
        {'Ann': 1, 'Bob': 1, 'Cid': 0, 'Dee': 0},
        {'Ann': 1, 'Bob': 0, 'Cid': 0, 'Dee': 0},
    )
    assert record.round_number == 1
    assert record.stage == 1
    assert record.points_by_player() == {'Ann': 30, 'Bob': -30, 'Cid': 15, 'Dee': 15}
    assert session.scores == {'Ann': 30, 'Bob': -30, 'Cid': 15, 'Dee': 15}
    assert session.current_round == 2
    assert session.dealer_index == 1
    assert session.dealer == 'Bob'
    assert session.cards_per_hand == 1
    assert session.phase == BIDDING
    assert session.is_locked
    assert session.bids() == {p: 0 for p in PLAYERS}


def test_bids_matching_hand_size_block_tricks_phase(session):
    session.set_bids({'Ann': 1, 'Bob': 0, 'Cid': 0, 'Dee': 0})
    with pytest.raises(ValidationRejected) as exc:
        session.switch_to_tricks()
    assert exc.value.reason == 'equals_possible_tricks'
    assert session.phase == BIDDING


def test_tricks_must_match_hand_before_close(session):
    session.set_bids({'Ann': 1, 'Bob': 1, 'Cid': 0, 'Dee': 0})
    session.switch_to_tricks()
    session.set_all_tricks({'Ann': 1, 'Bob': 1})
    before = session.to_dict()
    with pytest.raises(ValidationRejected) as exc:
        session.close_round()
    assert exc.value.reason == 'tricks_sum_mismatch'
    assert session.to_dict() == before


def test_negative_and_unknown_inputs_are_rejected(session):
    with pytest.raises(ValidationRejected):
        session.set_bid('Ann', -1)
    with pytest.raises(ValidationRejected) as exc:
        session.set_bid('Zed', 1)
    assert exc.value.reason == 'unknown_player'
    assert session.bids()['Ann'] == 0


def test_phase_guards(session):
    with pytest.raises(InvalidTransition):
        session.set_tricks('Ann', 1)
    with pytest.raises(InvalidTransition):
        session.close_round()
    session.set_bids({'Ann': 1, 'Bob': 1})
    session.switch_to_tricks()
    with pytest.raises(InvalidTransition):
        session.set_bid('Ann', 0)


def test_back_to_bidding_keeps_inputs(session):
    session.set_bids({'Ann': 1, 'Bob': 1})
    session.switch_to_tricks()
    session.set_tricks('Ann', 1)
    session.back_to_bidding()
    assert session.phase == BIDDING
    assert session.bids()['Ann'] == 1
    assert session.tricks()['Ann'] == 1


def test_blind_bidding_rules(session):
    with pytest.raises(ValidationRejected) as exc:
        session.toggle_blind('Bob')
    assert exc.value.reason == 'blind_not_allowed'
    session.set_bid('Cid', 1)
    with pytest.raises(ValidationRejected):
        session.toggle_blind('Cid')

    session.set_bid('Bob', 1)
    assert session.toggle_blind('Bob') is True
    assert session.blind_bidding_players == ['Bob']
    session.set_bid('Bob', 0)
    assert session.blind_bidding_players == []

    session.set_bid('Bob', 1)
    session.toggle_blind('Bob')
    assert session.toggle_blind('Bob') is False


def test_blind_bidder_scores_double_and_flag_clears(session):
    session.set_bid('Bob', 1)
    session.toggle_blind('Bob')
    record = play_round(
        session,
        {'Ann': 0, 'Bob': 1, 'Cid': 1, 'Dee': 0},
        {'Ann': 0, 'Bob': 1, 'Cid': 0, 'Dee': 0},
    )
    assert record.points_by_player()['Bob'] == 60
    bob = [r for r in record.results if r.player == 'Bob'][0]
    assert bob.blind_bidding
    assert session.blind_bidding_players == []


def test_special_game_applies_to_one_round(session):
    session.set_special_game('miser')
    record = play_round(
        session,
        {'Ann': 1, 'Bob': 1, 'Cid': 0, 'Dee': 0},
        {'Ann': 1, 'Bob': 0, 'Cid': 0, 'Dee': 0},
    )
    assert record.special_game == 'miser'
    assert record.points_by_player() == {'Ann': -10, 'Bob': 0, 'Cid': 0, 'Dee': 0}
    assert session.special_game is None
    with pytest.raises(ValidationRejected):
        session.set_special_game('jackpot')


def test_roster_and_deck_lock_after_first_round(session):
    session.set_players(['Ann', 'Bob', 'Cid'])
    assert session.scores == {'Ann': 0, 'Bob': 0, 'Cid': 0}
    session.set_deck_size(54)
    play_round(session, {'Ann': 1, 'Bob': 1, 'Cid': 0}, {'Ann': 1, 'Bob': 0, 'Cid': 0})
    with pytest.raises(SessionLocked):
        session.set_players(PLAYERS)
    with pytest.raises(SessionLocked):
        session.set_deck_size(36)


def test_dealer_stays_put_without_rotation():
    game = GameSession.create(PLAYERS, dealer_rotation=False)
    game.start()
    play_round(game, {'Ann': 1, 'Bob': 1}, {'Ann': 1})
    assert game.dealer == 'Ann'
    assert game.current_round == 2


def test_full_game_finishes_with_tie():
    game = GameSession.create(PLAYERS)
    game.start()
    total = game.total_rounds
    while game.status == IN_PROGRESS:
        hand = game.cards_per_hand
        play_round(game, {p: 0 for p in PLAYERS}, {'Ann': hand})
    assert len(game.round_history) == total == 30
    assert game.current_round == 31
    assert game.status == FINISHED
    assert game.open_round is None
    assert game.cards_per_hand is None
    assert game.end_time is not None
    assert game.scores == {'Ann': 58, 'Bob': 270, 'Cid': 270, 'Dee': 270}
    assert game.winner == TIE
    with pytest.raises(InvalidTransition):
        game.set_bid('Ann', 1)


def test_custom_stage_game_uses_stored_types():
    game = GameSession.create(PLAYERS, stage_types=['golden', 'blind'])
    game.start()
    assert game.total_rounds == 8
    assert game.stage_config.custom
    with pytest.raises(ValidationRejected) as exc:
        GameSession.create(PLAYERS, stage_types=['golden', 'sideways'])
    assert exc.value.reason == 'invalid_stages'


def test_compute_winner():
    assert compute_winner({'Ann': 10, 'Bob': 5}) == 'Ann'
    assert compute_winner({'Ann': 10, 'Bob': 10}) == TIE
    assert compute_winner({}) is None


def test_snapshot_round_trip(session):
    play_round(session, {'Ann': 1, 'Bob': 1}, {'Ann': 1})
    session.set_bid('Cid', 1)
    restored = GameSession.from_dict(session.to_dict())
    assert restored == session


def test_snapshot_cache_is_not_trusted(session):
    snapshot = session.to_dict()
    snapshot['cards_per_hand'] = 7
    snapshot['stage'] = 4
    restored = GameSession.from_dict(snapshot)
    assert restored.cards_per_hand == 1
    assert restored.stage_info.stage == 1


def test_corrupt_snapshot_is_repaired(caplog):
    with caplog.at_level(logging.WARNING):
        restored = GameSession.from_dict({
            'players': ['Ann', 'Bob'],
            'status': 'in_progress',
            'current_round': 'three',
            'scores': {'Ann': '12'},
            'deck_size': 40,
            'phase': 'dealing',
        })
    assert restored.current_round == 1
    assert restored.deck_size == 36
    assert restored.phase == BIDDING
    assert restored.scores == {'Ann': 12, 'Bob': 0}
    assert set(restored.open_round) == {'Ann', 'Bob'}
    assert '[snapshot-repair]' in caplog.text


def test_non_dict_snapshot_becomes_empty_session():
    restored = GameSession.from_dict(None)
    assert restored.players == []
    assert restored.status == SETUP


def test_snapshot_past_last_round_is_finished():
    restored = GameSession.from_dict({
        'players': ['Ann', 'Bob'],
        'status': 'in_progress',
        'current_round': 99,
        'scores': {'Ann': 40, 'Bob': 10},
    })
    assert restored.status == FINISHED
    assert restored.winner == 'Ann'


def test_tricks_phase_constant_matches_snapshot(session):
    session.set_bids({'Ann': 1, 'Bob': 1})
    session.switch_to_tricks()
    assert session.to_dict()['phase'] == TRICKS


@pytest.mark.parametrize('value', [True, False, 1.5, 'two', None])
def test_bids_must_be_whole_numbers(session, value):
    with pytest.raises(ValidationRejected) as exc:
        session.set_bid('Ann', value)
    assert exc.value.reason == 'invalid_bid'
    assert session.bids()['Ann'] == 0


def test_integral_floats_and_numeric_strings_are_accepted(session):
    session.set_bids({'Ann': 1.0, 'Bob': '1'})
    assert session.bids()['Ann'] == 1
    assert session.bids()['Bob'] == 1
    session.switch_to_tricks()
    with pytest.raises(ValidationRejected) as exc:
        session.set_tricks('Ann', True)
    assert exc.value.reason == 'invalid_tricks'
