from scorekeeper.services.games.bidding import (
    RejectionReason,
    blind_eligible_player,
    can_bid_blind,
    player_order,
    validate_bids,
    validate_tricks,
)

PLAYERS = ['Ann', 'Bob', 'Cid', 'Dee']


def test_bids_equal_to_hand_size_are_rejected():
    check = validate_bids({'Ann': 2, 'Bob': 2, 'Cid': 1}, cards_per_hand=5, player_count=3)
    assert not check.ok
    assert check.reason is RejectionReason.EQUALS_POSSIBLE_TRICKS
    assert check.total == 5


def test_valid_bids():
    check = validate_bids({'Ann': 1, 'Bob': 1, 'Cid': 0, 'Dee': 0}, cards_per_hand=1, player_count=4)
    assert check.ok
    assert check.message() == 'Bids are valid'
    assert check.to_dict()['aggregate_cap'] == 4


def test_individual_cap_names_the_player():
    check = validate_bids({'Ann': 4, 'Bob': 0, 'Cid': 0}, cards_per_hand=3, player_count=3)
    assert check.reason is RejectionReason.INDIVIDUAL_CAP_EXCEEDED
    assert check.player == 'Ann'
    assert 'Ann' in check.message()


def test_aggregate_cap_is_checked_before_individual_cap():
    check = validate_bids({'Ann': 3, 'Bob': 2}, cards_per_hand=2, player_count=2)
    assert check.reason is RejectionReason.AGGREGATE_CAP_EXCEEDED


def test_tricks_must_add_up_to_hand_size():
    check = validate_tricks({'Ann': 1, 'Bob': 1}, cards_per_hand=3)
    assert not check.ok
    assert check.reason is RejectionReason.TRICKS_SUM_MISMATCH
    assert check.difference == 1
    assert validate_tricks({'Ann': 2, 'Bob': 1}, cards_per_hand=3).ok


def test_player_order_starts_at_dealer():
    assert player_order(PLAYERS, 0) == ['Ann', 'Bob', 'Cid', 'Dee']
    assert player_order(PLAYERS, 3) == ['Dee', 'Ann', 'Bob', 'Cid']
    assert player_order([], 0) == []


def test_only_seat_after_dealer_may_bid_blind():
    assert blind_eligible_player(PLAYERS, 0) == 'Bob'
    assert blind_eligible_player(PLAYERS, 3) == 'Ann'
    assert can_bid_blind('Bob', 1, PLAYERS, 0)
    assert not can_bid_blind('Bob', 0, PLAYERS, 0)
    assert not can_bid_blind('Cid', 2, PLAYERS, 0)
