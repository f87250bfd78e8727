"""Archive of finished and abandoned games, plus running player statistics."""

import json
from typing import Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from scorekeeper import db
from scorekeeper.errors import SyncUnavailable
from scorekeeper.models import ArchivedGame, PlayerStats
from scorekeeper.services.games.session import TIE, GameSession, utcnow


def game_stats(scores: dict, rounds_completed: int, total_rounds: int,
               premature: bool = False, ended_at_round: Optional[int] = None) -> dict:
    values = list(scores.values())
    total = sum(values)
    highest = max(values + [0])
    lowest = min(values + [0])
    return {
        'player_count': len(values),
        'total_score': total,
        'average_score': total / len(values) if values else 0,
        'highest_score': highest,
        'lowest_score': lowest,
        'score_spread': highest - lowest,
        'rounds_completed': rounds_completed,
        'completion_rate': ((ended_at_round or 1) / (total_rounds or 1)) if premature else 1.0,
    }


def archive_session(session: GameSession, premature: bool = False,
                    device_id: Optional[str] = None) -> ArchivedGame:
    """Store ``session`` in the history and fold it into player stats."""
    end_time = session.end_time or utcnow()
    ended_at_round = session.current_round if premature else None
    record = ArchivedGame(
        winner=session.winner,
        scores=json.dumps(session.scores),
        players=json.dumps(session.players),
        deck_size=session.deck_size,
        max_cards=session.max_cards,
        start_time=session.start_time,
        end_time=end_time,
        duration_minutes=round((end_time - session.start_time).total_seconds() / 60) if session.start_time else 0,
        total_rounds=session.total_rounds,
        rounds_played=len(session.round_history),
        rounds=json.dumps([r.to_dict() for r in session.round_history]),
        premature_end=premature,
        ended_at_round=ended_at_round,
        stats=json.dumps(game_stats(
            session.scores, len(session.round_history), session.total_rounds, premature, ended_at_round,
        )),
        device_id=device_id,
    )
    try:
        db.session.add(record)
        _update_player_stats(session, premature, end_time)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise SyncUnavailable(f'Could not archive game: {exc.__class__.__name__}') from exc
    current_app.logger.info(
        f"[archive] game={record.game_id} winner={record.winner} rounds={record.rounds_played}/{record.total_rounds} premature={premature}"
    )
    return record


def _update_player_stats(session: GameSession, premature: bool, played_at) -> None:
    best = max(session.scores.values()) if session.scores else 0
    rounds = len(session.round_history)
    for player in session.players:
        score = session.scores.get(player, 0)
        stats = db.session.get(PlayerStats, player)
        if stats is None:
            stats = PlayerStats(name=player, total_games=0, total_wins=0, total_score=0,
                                total_rounds=0, premature_end_games=0)
        won = session.winner == player or (session.winner == TIE and score == best)
        stats.total_games += 1
        stats.total_wins += 1 if won else 0
        stats.total_score += score
        stats.total_rounds += rounds
        stats.premature_end_games += 1 if premature else 0
        stats.best_score = score if stats.best_score is None else max(stats.best_score, score)
        stats.last_played = played_at
        db.session.add(stats)


def list_games(limit=None, player=None, winner=None, premature=None):
    query = ArchivedGame.query
    if winner:
        query = query.filter_by(winner=winner)
    if premature is not None:
        query = query.filter_by(premature_end=premature)
    query = query.order_by(ArchivedGame.created_at.desc(), ArchivedGame.id.desc())
    games = query.all()
    if player:
        # Roster is stored as JSON, so filter after loading
        games = [g for g in games if player in g.player_list()]
    if limit:
        games = games[:limit]
    return games


def get_game(game_id: str) -> Optional[ArchivedGame]:
    return ArchivedGame.query.filter_by(game_id=game_id).first()


def delete_game(game_id: str) -> bool:
    game = get_game(game_id)
    if not game:
        return False
    db.session.delete(game)
    db.session.commit()
    return True


def get_player_stats(name: str) -> Optional[PlayerStats]:
    return db.session.get(PlayerStats, name)
