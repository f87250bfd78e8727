"""Sync channel and device settings on top of the document store.

The active game lives in a single well-known document; starting a new game
overwrites it. Every save or clear is pushed to visualizers in the
``game:current`` room and to in-process subscribers. There is no merge:
whichever snapshot is committed last wins.
"""

import threading
from typing import Callable, List, Optional, Tuple

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from scorekeeper import db, socketio
from scorekeeper.errors import SyncUnavailable
from scorekeeper.models import Document
from scorekeeper.services.games.session import GameSession
from scorekeeper.services.games.stages import DECK_SIZES, parse_stage_types

CURRENT_GAME_KEY = 'current_game'
PLAYERS_KEY = 'players'
DECK_SIZE_KEY = 'deck_size'
CUSTOM_STAGES_KEY = 'custom_stages'

ROOM = 'game:current'
NAMESPACE = '/ws'


def read_document(key: str):
    try:
        doc = db.session.get(Document, key)
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise SyncUnavailable(f'Document store unavailable: {exc.__class__.__name__}') from exc
    return doc.value if doc else None


def write_document(key: str, value, device_id: Optional[str] = None) -> None:
    try:
        doc = db.session.get(Document, key)
        if doc is None:
            doc = Document(key=key)
        doc.value = value
        doc.device_id = device_id
        db.session.add(doc)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise SyncUnavailable(f'Document store unavailable: {exc.__class__.__name__}') from exc


def delete_document(key: str) -> None:
    try:
        Document.query.filter_by(key=key).delete()
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise SyncUnavailable(f'Document store unavailable: {exc.__class__.__name__}') from exc


class SyncChannel:
    def __init__(self, key: str = CURRENT_GAME_KEY):
        self.key = key
        self._subscribers: List[Tuple[Callable, Optional[Callable]]] = []
        self._lock = threading.Lock()

    def save_session(self, session: GameSession, device_id: Optional[str] = None) -> None:
        snapshot = session.to_dict()
        try:
            write_document(self.key, snapshot, device_id)
        except SyncUnavailable as exc:
            self._fail(exc)
            raise
        self._publish(snapshot)

    def load_session(self) -> Optional[GameSession]:
        try:
            snapshot = read_document(self.key)
        except SyncUnavailable as exc:
            self._fail(exc)
            raise
        if snapshot is None:
            return None
        return GameSession.from_dict(snapshot)

    def clear_session(self) -> None:
        try:
            delete_document(self.key)
        except SyncUnavailable as exc:
            self._fail(exc)
            raise
        self._publish(None)

    def subscribe(self, callback: Callable, on_error: Optional[Callable] = None) -> Callable[[], None]:
        """Register ``callback(session_or_none)``; returns an idempotent unsubscribe."""
        entry = (callback, on_error)
        with self._lock:
            self._subscribers.append(entry)

        def unsubscribe():
            with self._lock:
                if entry in self._subscribers:
                    self._subscribers.remove(entry)

        return unsubscribe

    def _publish(self, snapshot) -> None:
        # Fire-and-forget; a broken listener must not undo a committed save
        try:
            socketio.emit('state_update', {'session': snapshot}, to=ROOM, namespace=NAMESPACE)
        except Exception as exc:
            current_app.logger.warning(f"[sync-emit] state_update failed: {exc}")
        with self._lock:
            subscribers = list(self._subscribers)
        for callback, _ in subscribers:
            session = GameSession.from_dict(snapshot) if snapshot is not None else None
            try:
                callback(session)
            except Exception:
                current_app.logger.exception('[sync-notify] subscriber failed')

    def _fail(self, exc: SyncUnavailable) -> None:
        current_app.logger.error(f"[sync-unavailable] key={self.key} {exc.message}")
        with self._lock:
            subscribers = list(self._subscribers)
        for _, on_error in subscribers:
            if on_error is not None:
                on_error(exc)


channel = SyncChannel()


# ---- device-local settings ----

def get_players() -> List[str]:
    players = read_document(PLAYERS_KEY)
    if not isinstance(players, list) or not players:
        return list(current_app.config.get('DEFAULT_PLAYERS', []))
    return [str(p) for p in players]


def save_players(players: List[str]) -> None:
    write_document(PLAYERS_KEY, list(players))


def get_deck_size() -> int:
    deck_size = read_document(DECK_SIZE_KEY)
    if deck_size not in DECK_SIZES:
        return int(current_app.config.get('DEFAULT_DECK_SIZE', 36))
    return deck_size


def save_deck_size(deck_size: int) -> None:
    if deck_size not in DECK_SIZES:
        raise ValueError(f'deck size must be one of {DECK_SIZES}')
    write_document(DECK_SIZE_KEY, deck_size)


def get_custom_stages() -> Optional[List[str]]:
    stored = read_document(CUSTOM_STAGES_KEY)
    if not stored:
        return None
    try:
        return [stage_type.value for stage_type in parse_stage_types(stored)]
    except ValueError as exc:
        current_app.logger.warning(f"[settings] ignoring stored custom stages: {exc}")
        return None


def save_custom_stages(stage_types) -> List[str]:
    parsed = [stage_type.value for stage_type in parse_stage_types(stage_types)]
    if not parsed:
        raise ValueError('add at least one stage')
    write_document(CUSTOM_STAGES_KEY, parsed)
    return parsed


def clear_custom_stages() -> None:
    delete_document(CUSTOM_STAGES_KEY)
