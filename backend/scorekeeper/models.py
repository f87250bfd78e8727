from scorekeeper import db
from datetime import datetime, timezone
import json
import uuid


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _loads(text, default):
    if not text:
        return default
    try:
        return json.loads(text)
    except ValueError:
        return default


class Document(db.Model):
    """One JSON document per well-known key (current game, roster, deck, stages)."""
    __tablename__ = 'document'
    key = db.Column(db.String(64), primary_key=True)
    payload = db.Column(db.Text, nullable=True)
    device_id = db.Column(db.String(64), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    @property
    def value(self):
        return _loads(self.payload, None)

    @value.setter
    def value(self, data):
        self.payload = json.dumps(data)

    def to_dict(self):
        return {
            'key': self.key,
            'value': self.value,
            'device_id': self.device_id,
            'updated_at': _iso(self.updated_at),
        }


def generate_game_id():
    return uuid.uuid4().hex


class ArchivedGame(db.Model):
    __tablename__ = 'archived_game'
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.String(32), unique=True, index=True, default=generate_game_id)
    winner = db.Column(db.String(64), nullable=True)
    scores = db.Column(db.Text, nullable=False)  # JSON-encoded {player: score}
    players = db.Column(db.Text, nullable=False)  # JSON-encoded list of names
    deck_size = db.Column(db.Integer, default=36)
    max_cards = db.Column(db.Integer, nullable=True)
    start_time = db.Column(db.DateTime(timezone=True), nullable=True)
    end_time = db.Column(db.DateTime(timezone=True), nullable=True)
    duration_minutes = db.Column(db.Integer, default=0)
    total_rounds = db.Column(db.Integer, default=0)  # configured length of the game
    rounds_played = db.Column(db.Integer, default=0)
    rounds = db.Column(db.Text, nullable=True)  # JSON-encoded round history
    premature_end = db.Column(db.Boolean, default=False, nullable=False)
    ended_at_round = db.Column(db.Integer, nullable=True)
    stats = db.Column(db.Text, nullable=True)  # JSON-encoded summary statistics
    device_id = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, index=True)

    def player_list(self):
        return _loads(self.players, [])

    def to_dict(self, include_rounds=True):
        data = {
            'id': self.game_id,
            'winner': self.winner,
            'scores': _loads(self.scores, {}),
            'players': self.player_list(),
            'deck_size': self.deck_size,
            'max_cards': self.max_cards,
            'start_time': _iso(self.start_time),
            'end_time': _iso(self.end_time),
            'duration': self.duration_minutes,
            'total_rounds': self.total_rounds,
            'rounds_played': self.rounds_played,
            'premature_end': self.premature_end,
            'ended_at_round': self.ended_at_round,
            'stats': _loads(self.stats, {}),
            'created_at': _iso(self.created_at),
        }
        if include_rounds:
            data['rounds'] = _loads(self.rounds, [])
        return data


class PlayerStats(db.Model):
    __tablename__ = 'player_stats'
    name = db.Column(db.String(64), primary_key=True)
    total_games = db.Column(db.Integer, default=0, nullable=False)
    total_wins = db.Column(db.Integer, default=0, nullable=False)
    total_score = db.Column(db.Integer, default=0, nullable=False)
    total_rounds = db.Column(db.Integer, default=0, nullable=False)
    premature_end_games = db.Column(db.Integer, default=0, nullable=False)
    best_score = db.Column(db.Integer, nullable=True)
    last_played = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self):
        return {
            'name': self.name,
            'total_games': self.total_games,
            'total_wins': self.total_wins,
            'total_score': self.total_score,
            'total_rounds': self.total_rounds,
            'premature_end_games': self.premature_end_games,
            'best_score': self.best_score,
            'average_score': round(self.total_score / self.total_games, 1) if self.total_games else 0,
            'last_played': _iso(self.last_played),
        }
