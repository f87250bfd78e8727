"""Game session state machine.

A session moves ``setup -> in_progress -> finished``. While in progress each
round goes through a bidding phase and a tricks phase; closing the tricks
phase scores the round, appends it to the history and opens the next one.
Every transition validates first and only then mutates, so a rejected
action leaves the session exactly as it was.

Sessions travel between devices as plain snapshots (``to_dict`` /
``from_dict``). Loading a snapshot repairs missing or malformed fields with
defaults instead of failing.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from scorekeeper.errors import InvalidTransition, SessionLocked, ValidationRejected

from .bidding import (
    RejectionReason,
    blind_eligible_player,
    can_bid_blind,
    player_order,
    validate_bids,
    validate_tricks,
)
from .rounds import cards_per_hand, stage_info
from .scoring import parse_special_game, score_round
from .stages import DECK_SIZES, max_cards_for_player_count, parse_stage_types, resolve_stage_config

logger = logging.getLogger(__name__)

SETUP = 'setup'
IN_PROGRESS = 'in_progress'
FINISHED = 'finished'
STATUSES = (SETUP, IN_PROGRESS, FINISHED)

BIDDING = 'bidding'
TRICKS = 'tricks'
PHASES = (BIDDING, TRICKS)

TIE = 'Tie'
MIN_PLAYERS = 2


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_time(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        logger.warning('[snapshot-repair] unreadable timestamp %r dropped', value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _as_int(value, default=0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def compute_winner(scores: Dict[str, int]) -> Optional[str]:
    if not scores:
        return None
    best = max(scores.values())
    leaders = [player for player, score in scores.items() if score == best]
    return leaders[0] if len(leaders) == 1 else TIE


@dataclass(frozen=True)
class PlayerRoundResult:
    player: str
    bid: int = 0
    tricks: int = 0
    points: int = 0
    blind_bidding: bool = False

    def to_dict(self):
        return {
            'player': self.player,
            'bid': self.bid,
            'tricks': self.tricks,
            'points': self.points,
            'blind_bidding': self.blind_bidding,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            player=str(data['player']),
            bid=max(0, _as_int(data.get('bid'))),
            tricks=max(0, _as_int(data.get('tricks'))),
            points=_as_int(data.get('points')),
            blind_bidding=bool(data.get('blind_bidding', data.get('blindBidding', False))),
        )


@dataclass(frozen=True)
class RoundRecord:
    round_number: int
    cards_per_hand: int
    stage: int
    special_game: Optional[str]
    results: Tuple[PlayerRoundResult, ...]

    def points_by_player(self):
        return {result.player: result.points for result in self.results}

    def to_dict(self):
        return {
            'round_number': self.round_number,
            'cards_per_hand': self.cards_per_hand,
            'stage': self.stage,
            'special_game': self.special_game,
            'results': [result.to_dict() for result in self.results],
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            round_number=_as_int(data.get('round_number', data.get('round')), 0),
            cards_per_hand=_as_int(data.get('cards_per_hand', data.get('cardsPerHand')), 0),
            stage=_as_int(data.get('stage'), 0),
            special_game=data.get('special_game', data.get('specialGame')),
            results=tuple(PlayerRoundResult.from_dict(r) for r in data.get('results') or ()),
        )


@dataclass
class GameSession:
    players: List[str]
    deck_size: int = 36
    stage_types: Optional[List[str]] = None
    dealer_rotation: bool = True
    status: str = SETUP
    phase: str = BIDDING
    current_round: int = 1
    scores: Dict[str, int] = field(default_factory=dict)
    round_history: List[RoundRecord] = field(default_factory=list)
    open_round: Optional[Dict[str, PlayerRoundResult]] = None
    dealer_index: int = 0
    blind_bidding_players: List[str] = field(default_factory=list)
    special_game: Optional[str] = None
    is_locked: bool = False
    winner: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    # ---- construction ----

    @classmethod
    def create(cls, players, deck_size=36, stage_types=None, dealer_rotation=True) -> 'GameSession':
        roster = clean_roster(players)
        _check_deck_size(deck_size)
        types = _clean_stage_types(stage_types)
        return cls(
            players=roster,
            deck_size=int(deck_size),
            stage_types=types,
            dealer_rotation=bool(dealer_rotation),
            scores={player: 0 for player in roster},
            start_time=utcnow(),
        )

    # ---- derived values ----

    @property
    def player_count(self) -> int:
        return len(self.players)

    @property
    def stage_config(self):
        return resolve_stage_config(self.player_count, self.deck_size, self.stage_types)

    @property
    def max_cards(self) -> int:
        return max_cards_for_player_count(self.player_count, self.deck_size)

    @property
    def total_rounds(self) -> int:
        return self.stage_config.total_rounds

    @property
    def cards_per_hand(self) -> Optional[int]:
        config = self.stage_config
        if self.current_round > config.total_rounds:
            return None
        return cards_per_hand(self.current_round, config, self.max_cards)

    @property
    def stage_info(self):
        config = self.stage_config
        if self.current_round > config.total_rounds:
            return None
        return stage_info(self.current_round, config)

    @property
    def dealer(self) -> Optional[str]:
        if not self.players:
            return None
        return self.players[self.dealer_index % self.player_count]

    def player_order(self):
        return player_order(self.players, self.dealer_index)

    @property
    def first_player(self) -> Optional[str]:
        order = self.player_order()
        return order[1] if len(order) > 1 else None

    @property
    def blind_eligible_player(self) -> Optional[str]:
        return blind_eligible_player(self.players, self.dealer_index)

    @property
    def next_dealer(self) -> Optional[str]:
        if not self.players:
            return None
        return self.players[(self.dealer_index + 1) % self.player_count]

    def bids(self) -> Dict[str, int]:
        return {p: r.bid for p, r in (self.open_round or {}).items()}

    def tricks(self) -> Dict[str, int]:
        return {p: r.tricks for p, r in (self.open_round or {}).items()}

    def bid_check(self):
        return validate_bids(self.bids(), self.cards_per_hand or 0, self.player_count)

    def trick_check(self):
        return validate_tricks(self.tricks(), self.cards_per_hand or 0)

    def has_scores(self) -> bool:
        return any(score != 0 for score in self.scores.values())

    def duration_minutes(self) -> int:
        if not self.start_time:
            return 0
        end = self.end_time or utcnow()
        return round((end - self.start_time).total_seconds() / 60)

    # ---- setup ----

    def set_players(self, players) -> None:
        self._require_unlocked('players')
        roster = clean_roster(players)
        if self.status == IN_PROGRESS and len(roster) < MIN_PLAYERS:
            raise ValidationRejected(
                f'At least {MIN_PLAYERS} players are required', reason='not_enough_players',
            )
        self.players = roster
        self.scores = {player: self.scores.get(player, 0) for player in roster}
        self.dealer_index = self.dealer_index % len(roster) if roster else 0
        self.blind_bidding_players = [p for p in self.blind_bidding_players if p in roster]
        if self.open_round is not None:
            self.open_round = {
                player: self.open_round.get(player, PlayerRoundResult(player)) for player in roster
            }

    def set_deck_size(self, deck_size) -> None:
        self._require_unlocked('deck size')
        _check_deck_size(deck_size)
        self.deck_size = int(deck_size)

    def set_dealer_rotation(self, enabled: bool) -> None:
        self.dealer_rotation = bool(enabled)

    def start(self) -> None:
        if self.status != SETUP:
            raise InvalidTransition(f'Cannot start a game that is {self.status}')
        if self.player_count < MIN_PLAYERS:
            raise ValidationRejected(
                f'At least {MIN_PLAYERS} players are required to start', reason='not_enough_players',
            )
        self.status = IN_PROGRESS
        self.phase = BIDDING
        self.current_round = 1
        self.scores = {player: 0 for player in self.players}
        self.round_history = []
        self.dealer_index = 0
        self.blind_bidding_players = []
        self.special_game = None
        self.winner = None
        self.end_time = None
        self.start_time = utcnow()
        self._open_new_round()

    # ---- bidding phase ----

    def set_bid(self, player: str, bid) -> None:
        self.set_bids({player: bid})

    def set_bids(self, bids) -> None:
        self._require_phase(BIDDING)
        cleaned = {self._require_player(p): _non_negative(v, 'bid') for p, v in bids.items()}
        for player, bid in cleaned.items():
            self.open_round[player] = replace(self.open_round[player], bid=bid)
            if bid == 0 and player in self.blind_bidding_players:
                self.blind_bidding_players.remove(player)

    def toggle_blind(self, player: str) -> bool:
        self._require_phase(BIDDING)
        self._require_player(player)
        bid = self.open_round[player].bid
        if not can_bid_blind(player, bid, self.players, self.dealer_index):
            raise ValidationRejected(
                f'Only {self.blind_eligible_player} may bid blind, and only with a bid of 1 or more',
                reason=RejectionReason.BLIND_NOT_ALLOWED.value,
                details={'player': player, 'bid': bid, 'eligible': self.blind_eligible_player},
            )
        if player in self.blind_bidding_players:
            self.blind_bidding_players.remove(player)
            return False
        self.blind_bidding_players.append(player)
        return True

    def set_special_game(self, value) -> None:
        self._require_in_progress()
        try:
            special = parse_special_game(value)
        except ValueError as exc:
            raise ValidationRejected(str(exc), reason='invalid_special_game') from None
        self.special_game = special.value if special else None

    def switch_to_tricks(self) -> None:
        self._require_phase(BIDDING)
        check = self.bid_check()
        if not check.ok:
            raise ValidationRejected(check.message(), reason=check.reason.value, details=check.to_dict())
        self.phase = TRICKS

    # ---- tricks phase ----

    def back_to_bidding(self) -> None:
        self._require_phase(TRICKS)
        self.phase = BIDDING

    def set_tricks(self, player: str, tricks) -> None:
        self.set_all_tricks({player: tricks})

    def set_all_tricks(self, tricks) -> None:
        self._require_phase(TRICKS)
        cleaned = {self._require_player(p): _non_negative(v, 'tricks') for p, v in tricks.items()}
        for player, value in cleaned.items():
            self.open_round[player] = replace(self.open_round[player], tricks=value)

    def close_round(self) -> RoundRecord:
        self._require_phase(TRICKS)
        trick_check = self.trick_check()
        if not trick_check.ok:
            raise ValidationRejected(
                trick_check.message(), reason=trick_check.reason.value, details=trick_check.to_dict(),
            )
        bid_check = self.bid_check()
        if not bid_check.ok:
            raise ValidationRejected(bid_check.message(), reason=bid_check.reason.value, details=bid_check.to_dict())

        info = self.stage_info
        hand = self.cards_per_hand
        blind = set(self.blind_bidding_players)
        entries = [self.open_round[player] for player in self.players]
        points = {s.player: s.points for s in score_round(entries, info.stage, self.special_game, blind)}
        record = RoundRecord(
            round_number=self.current_round,
            cards_per_hand=hand,
            stage=info.stage,
            special_game=self.special_game,
            results=tuple(
                replace(entry, points=points[entry.player], blind_bidding=entry.player in blind)
                for entry in entries
            ),
        )

        for player, gained in points.items():
            self.scores[player] = self.scores.get(player, 0) + gained
        self.round_history.append(record)
        self.blind_bidding_players = []
        self.special_game = None
        if self.current_round == 1:
            self.is_locked = True
        if self.dealer_rotation:
            self.dealer_index = (self.dealer_index + 1) % self.player_count
        self.current_round += 1
        self.phase = BIDDING

        if self.current_round > self.total_rounds:
            self._finish()
        else:
            self._open_new_round()
        return record

    # ---- internals ----

    def _finish(self) -> None:
        self.status = FINISHED
        self.open_round = None
        self.end_time = utcnow()
        self.winner = compute_winner(self.scores)

    def _open_new_round(self) -> None:
        self.open_round = {player: PlayerRoundResult(player) for player in self.players}

    def _require_unlocked(self, what: str) -> None:
        if self.is_locked:
            raise SessionLocked(f'The {what} cannot change once the first round has been played')
        if self.status == FINISHED:
            raise InvalidTransition('The game is already finished')

    def _require_in_progress(self) -> None:
        if self.status != IN_PROGRESS:
            raise InvalidTransition(f'The game is {self.status}, not in progress')

    def _require_phase(self, phase: str) -> None:
        self._require_in_progress()
        if self.phase != phase:
            raise InvalidTransition(f'Only allowed during the {phase} phase (current: {self.phase})')

    def _require_player(self, player: str) -> str:
        if player not in self.players:
            raise ValidationRejected(f'Unknown player: {player}', reason='unknown_player')
        return player

    # ---- snapshots ----

    def to_dict(self):
        info = self.stage_info
        return {
            'status': self.status,
            'phase': self.phase,
            'players': list(self.players),
            'deck_size': self.deck_size,
            'stage_types': list(self.stage_types) if self.stage_types else None,
            'dealer_rotation': self.dealer_rotation,
            'current_round': self.current_round,
            # Display cache only; consumers re-derive it from current_round
            'cards_per_hand': self.cards_per_hand,
            'stage': info.stage if info else None,
            'scores': dict(self.scores),
            'round_history': [record.to_dict() for record in self.round_history],
            'open_round': (
                {'results': [self.open_round[p].to_dict() for p in self.players if p in self.open_round]}
                if self.open_round is not None else None
            ),
            'dealer_index': self.dealer_index,
            'blind_bidding_players': list(self.blind_bidding_players),
            'special_game': self.special_game,
            'is_locked': self.is_locked,
            'winner': self.winner,
            'start_time': _iso(self.start_time),
            'end_time': _iso(self.end_time),
        }

    @classmethod
    def from_dict(cls, data) -> 'GameSession':
        if not isinstance(data, dict):
            logger.warning('[snapshot-repair] snapshot is %s, starting from an empty session', type(data).__name__)
            data = {}

        def repaired(name, default):
            logger.warning('[snapshot-repair] field %s missing or malformed, reset to %r', name, default)
            return default

        players = data.get('players')
        if not isinstance(players, list) or not all(isinstance(p, str) for p in players):
            players = repaired('players', [])

        deck_size = data.get('deck_size')
        if deck_size not in DECK_SIZES:
            deck_size = repaired('deck_size', 36)

        try:
            stage_types = _clean_stage_types(data.get('stage_types'))
        except ValidationRejected:
            stage_types = repaired('stage_types', None)

        status = data.get('status')
        if status not in STATUSES:
            status = repaired('status', SETUP)

        phase = data.get('phase')
        if phase not in PHASES:
            phase = repaired('phase', BIDDING)

        current_round = data.get('current_round')
        if not isinstance(current_round, int) or current_round < 1:
            current_round = repaired('current_round', 1)

        raw_scores = data.get('scores')
        if not isinstance(raw_scores, dict):
            raw_scores = repaired('scores', {})
        scores = {player: _as_int(raw_scores.get(player)) for player in players}

        raw_history = data.get('round_history')
        if not isinstance(raw_history, list):
            raw_history = repaired('round_history', [])
        history = []
        for entry in raw_history:
            try:
                history.append(RoundRecord.from_dict(entry))
            except (AttributeError, KeyError, TypeError):
                logger.warning('[snapshot-repair] dropped unreadable round record %r', entry)

        open_round = None
        raw_open = data.get('open_round')
        if status == IN_PROGRESS:
            entries = {}
            if isinstance(raw_open, dict) and isinstance(raw_open.get('results'), list):
                for entry in raw_open['results']:
                    try:
                        result = PlayerRoundResult.from_dict(entry)
                    except (AttributeError, KeyError, TypeError):
                        continue
                    if result.player in players:
                        entries[result.player] = result
            elif raw_open is not None:
                repaired('open_round', None)
            open_round = {player: entries.get(player, PlayerRoundResult(player)) for player in players}

        dealer_index = data.get('dealer_index')
        if not isinstance(dealer_index, int) or not (0 <= dealer_index < max(1, len(players))):
            dealer_index = repaired('dealer_index', 0)

        blind = data.get('blind_bidding_players')
        if not isinstance(blind, list):
            blind = repaired('blind_bidding_players', [])
        blind = [p for p in blind if p in players]

        try:
            special = parse_special_game(data.get('special_game'))
        except ValueError:
            special = repaired('special_game', None)

        session = cls(
            players=list(players),
            deck_size=deck_size,
            stage_types=stage_types,
            dealer_rotation=bool(data.get('dealer_rotation', True)),
            status=status,
            phase=phase,
            current_round=current_round,
            scores=scores,
            round_history=history,
            open_round=open_round,
            dealer_index=dealer_index,
            blind_bidding_players=blind,
            special_game=special.value if special else None,
            is_locked=bool(data.get('is_locked', False)),
            winner=data.get('winner'),
            start_time=_parse_time(data.get('start_time')),
            end_time=_parse_time(data.get('end_time')),
        )
        if session.status == IN_PROGRESS and session.current_round > session.total_rounds:
            logger.warning('[snapshot-repair] round %s is past the last round, finishing game', current_round)
            session._finish()
        return session


def clean_roster(players) -> List[str]:
    roster = []
    for name in players or ():
        name = str(name).strip()
        if not name:
            raise ValidationRejected('Player names cannot be empty', reason='invalid_roster')
        if name in roster:
            raise ValidationRejected(f'Duplicate player name: {name}', reason='invalid_roster')
        roster.append(name)
    return roster


def _check_deck_size(deck_size) -> None:
    if deck_size not in DECK_SIZES:
        raise ValidationRejected(
            f'Deck size must be one of {", ".join(map(str, DECK_SIZES))}', reason='invalid_deck_size',
        )


def _clean_stage_types(stage_types) -> Optional[List[str]]:
    if not stage_types:
        return None
    try:
        return [stage_type.value for stage_type in parse_stage_types(stage_types)]
    except ValueError as exc:
        raise ValidationRejected(str(exc), reason='invalid_stages') from None


def _non_negative(value, what: str) -> int:
    if isinstance(value, bool):
        raise ValidationRejected(f'{what} must be a whole number', reason=f'invalid_{what}')
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationRejected(f'{what} must be a whole number', reason=f'invalid_{what}')
        value = int(value)
    elif not isinstance(value, int):
        try:
            value = int(value)
        except (TypeError, ValueError):
            raise ValidationRejected(f'{what} must be a whole number', reason=f'invalid_{what}') from None
    if value < 0:
        raise ValidationRejected(f'{what} cannot be negative', reason=f'invalid_{what}')
    return value
