"""Bid and trick validation.

A round's bids are accepted only when every bid fits in the hand, the bids
together stay under the table cap, and the total does not equal the number
of tricks on offer. Tricks are accepted only when they add up to the hand
size exactly.
"""

import enum
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence


class RejectionReason(str, enum.Enum):
    INDIVIDUAL_CAP_EXCEEDED = 'individual_cap_exceeded'
    AGGREGATE_CAP_EXCEEDED = 'aggregate_cap_exceeded'
    EQUALS_POSSIBLE_TRICKS = 'equals_possible_tricks'
    TRICKS_SUM_MISMATCH = 'tricks_sum_mismatch'
    BLIND_NOT_ALLOWED = 'blind_not_allowed'


@dataclass(frozen=True)
class BidCheck:
    total: int
    individual_cap: int
    aggregate_cap: int
    reason: Optional[RejectionReason] = None
    player: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.reason is None

    def message(self) -> str:
        if self.reason is RejectionReason.AGGREGATE_CAP_EXCEEDED:
            return f'Total bids {self.total} exceed the cap of {self.aggregate_cap}'
        if self.reason is RejectionReason.EQUALS_POSSIBLE_TRICKS:
            return f'Total bids must not equal the {self.individual_cap} tricks available'
        if self.reason is RejectionReason.INDIVIDUAL_CAP_EXCEEDED:
            return f'{self.player} bid more than the {self.individual_cap} cards in hand'
        return 'Bids are valid'

    def to_dict(self):
        return {
            'ok': self.ok,
            'reason': self.reason.value if self.reason else None,
            'player': self.player,
            'total': self.total,
            'individual_cap': self.individual_cap,
            'aggregate_cap': self.aggregate_cap,
        }


@dataclass(frozen=True)
class TrickCheck:
    total: int
    expected: int
    reason: Optional[RejectionReason] = field(default=None)

    @property
    def ok(self) -> bool:
        return self.reason is None

    @property
    def difference(self) -> int:
        return self.expected - self.total

    def message(self) -> str:
        if self.ok:
            return 'Tricks are valid'
        return f'Tricks add up to {self.total}, expected exactly {self.expected}'

    def to_dict(self):
        return {
            'ok': self.ok,
            'reason': self.reason.value if self.reason else None,
            'total': self.total,
            'expected': self.expected,
            'difference': self.difference,
        }


def validate_bids(bids: Mapping[str, int], cards_per_hand: int, player_count: int) -> BidCheck:
    total = sum(bids.values())
    aggregate_cap = player_count * cards_per_hand

    def rejected(reason, player=None):
        return BidCheck(total, cards_per_hand, aggregate_cap, reason, player)

    if total > aggregate_cap:
        return rejected(RejectionReason.AGGREGATE_CAP_EXCEEDED)
    # Bids may never add up to the hand size
    if total == cards_per_hand:
        return rejected(RejectionReason.EQUALS_POSSIBLE_TRICKS)
    for player, bid in bids.items():
        if bid > cards_per_hand:
            return rejected(RejectionReason.INDIVIDUAL_CAP_EXCEEDED, player)
    return BidCheck(total, cards_per_hand, aggregate_cap)


def validate_tricks(tricks: Mapping[str, int], cards_per_hand: int) -> TrickCheck:
    total = sum(tricks.values())
    if total != cards_per_hand:
        return TrickCheck(total, cards_per_hand, RejectionReason.TRICKS_SUM_MISMATCH)
    return TrickCheck(total, cards_per_hand)


def player_order(players: Sequence[str], dealer_index: int):
    """Seats starting from the dealer."""
    if not players:
        return []
    count = len(players)
    return [players[(dealer_index + i) % count] for i in range(count)]


def blind_eligible_player(players: Sequence[str], dealer_index: int) -> Optional[str]:
    """The seat right after the dealer, the only one allowed to bid blind."""
    if not players:
        return None
    return players[(dealer_index + 1) % len(players)]


def can_bid_blind(player: str, bid: int, players: Sequence[str], dealer_index: int) -> bool:
    return bid > 0 and player == blind_eligible_player(players, dealer_index)
