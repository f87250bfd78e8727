from flask import Blueprint, jsonify, request, current_app

from scorekeeper.services.history import delete_game, get_game, get_player_stats, list_games


history = Blueprint('history', __name__)


def _flag(value):
    if value is None:
        return None
    return value.strip().lower() in ('1', 'true', 'yes')


@history.route('/', methods=['GET'])
def list_archived_games():
    try:
        limit = int(request.args.get('limit', current_app.config.get('HISTORY_PAGE_SIZE', 50)))
    except (TypeError, ValueError):
        return jsonify({'error': 'limit must be a whole number', 'reason': 'invalid_request'}), 400
    found = list_games(
        limit=limit,
        player=request.args.get('player'),
        winner=request.args.get('winner'),
        premature=_flag(request.args.get('premature')),
    )
    return jsonify({'games': [g.to_dict(include_rounds=False) for g in found]})


@history.route('/<string:game_id>', methods=['GET'])
def get_archived_game(game_id):
    game = get_game(game_id)
    if not game:
        return jsonify({'error': 'Game not found', 'reason': 'not_found'}), 404
    return jsonify(game.to_dict())


@history.route('/<string:game_id>', methods=['DELETE'])
def delete_archived_game(game_id):
    if not delete_game(game_id):
        return jsonify({'error': 'Game not found', 'reason': 'not_found'}), 404
    current_app.logger.info(f"[history] deleted game={game_id}")
    return jsonify({'message': 'Game deleted'})


@history.route('/players/<string:name>/stats', methods=['GET'])
def player_stats(name):
    stats = get_player_stats(name)
    if not stats:
        return jsonify({'error': f'No games recorded for {name}', 'reason': 'not_found'}), 404
    return jsonify(stats.to_dict())
