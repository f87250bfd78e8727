"""Visualizer view of a session snapshot.

Everything shown on the spectator screen is re-derived from the snapshot's
source fields through the same stage, round and scoring functions the
console uses. Cached values in the payload (such as ``cards_per_hand``) are
ignored.
"""

import logging
import threading
from typing import Callable, Optional

from scorekeeper.errors import SyncUnavailable

from .rounds import stage_info
from .scoring import SPECIAL_GAME_LABELS, parse_special_game, scoring_rules_text
from .session import FINISHED, GameSession
from .stages import describe_stage

logger = logging.getLogger(__name__)

ONLINE = 'online'
OFFLINE = 'offline'


def _special_label(value):
    try:
        special = parse_special_game(value)
    except ValueError:
        return None
    return SPECIAL_GAME_LABELS[special] if special else None


def build_display(snapshot) -> dict:
    if snapshot is None:
        return {'active': False}
    session = snapshot if isinstance(snapshot, GameSession) else GameSession.from_dict(snapshot)
    config = session.stage_config

    leaderboard = sorted(session.scores.items(), key=lambda item: item[1], reverse=True)
    best = leaderboard[0][1] if leaderboard else None

    view = {
        'active': True,
        'status': session.status,
        'phase': session.phase,
        'players': list(session.players),
        'deck_size': session.deck_size,
        'current_round': session.current_round,
        'total_rounds': config.total_rounds,
        'max_cards': session.max_cards,
        'cards_per_hand': session.cards_per_hand,
        'stage': None,
        'dealer': session.dealer,
        'first_player': session.first_player,
        'blind_eligible_player': session.blind_eligible_player,
        'blind_bidding_players': list(session.blind_bidding_players),
        'special_game': session.special_game,
        'special_game_label': _special_label(session.special_game),
        'leaderboard': [
            {'player': player, 'score': score, 'leading': score == best}
            for player, score in leaderboard
        ],
        'winner': session.winner,
        'elapsed_minutes': session.duration_minutes(),
        'last_round': None,
        'bids': None,
        'tricks': None,
    }

    info = session.stage_info
    if info is not None:
        stage = config.stages[info.index]
        view['stage'] = {
            **info.to_dict(),
            'description': describe_stage(stage, session.max_cards),
            'blind': stage.blind,
            'rules': scoring_rules_text(info.stage),
        }

    if session.open_round is not None and session.status != FINISHED:
        bid_check = session.bid_check()
        trick_check = session.trick_check()
        view['bids'] = {'by_player': session.bids(), **bid_check.to_dict()}
        view['tricks'] = {'by_player': session.tricks(), **trick_check.to_dict()}

    if session.round_history:
        record = session.round_history[-1]
        try:
            last_info = stage_info(record.round_number, config)
        except ValueError:
            last_info = None
        view['last_round'] = {
            **record.to_dict(),
            'stage': last_info.to_dict() if last_info else None,
            'special_game_label': _special_label(record.special_game),
        }
    return view


class DisplayFeed:
    """Read-only consumer of the sync channel for a spectator screen.

    Holds the latest derived view. When the channel is unreachable the feed
    goes offline and keeps its last view until ``reconnect`` succeeds.
    """

    def __init__(self, channel):
        self.channel = channel
        self.status = OFFLINE
        self.display = {'active': False}
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._lock = threading.Lock()

    def attach(self) -> bool:
        return self.reconnect()

    def reconnect(self) -> bool:
        try:
            session = self.channel.load_session()
        except SyncUnavailable as exc:
            self.mark_offline(exc)
            return False
        with self._lock:
            self.status = ONLINE
            self.display = build_display(session)
        if self._unsubscribe is None:
            self._unsubscribe = self.channel.subscribe(self.on_change, on_error=self.mark_offline)
        return True

    def on_change(self, session) -> None:
        with self._lock:
            if self.status != ONLINE:
                return
            self.display = build_display(session)

    def mark_offline(self, reason=None) -> None:
        with self._lock:
            if self.status != OFFLINE:
                logger.warning('[display] sync unavailable, going offline: %s', reason)
            self.status = OFFLINE

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def to_dict(self):
        with self._lock:
            return {'connection': self.status, **self.display}
