from flask import Blueprint, jsonify, request, current_app

from scorekeeper.errors import ValidationRejected
from scorekeeper.services.games.rounds import card_schedule
from scorekeeper.services.games.session import FINISHED, clean_roster
from scorekeeper.services.games.stages import (
    DECK_SIZES,
    PRESETS,
    describe_stage,
    max_cards_for_player_count,
    parse_stage_types,
    preset_stage_types,
    resolve_stage_config,
)
from scorekeeper.services.sync import (
    channel,
    clear_custom_stages,
    get_custom_stages,
    get_deck_size,
    get_players,
    save_custom_stages,
    save_deck_size,
    save_players,
)


settings = Blueprint('settings', __name__)


def _active_session():
    session = channel.load_session()
    if session is None or session.status == FINISHED:
        return None
    return session


def _int_arg(name, default):
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        raise ValidationRejected(f'{name} must be a whole number', reason='invalid_request') from None


def _preview(player_count, deck_size, stage_types):
    config = resolve_stage_config(player_count, deck_size, stage_types)
    max_cards = max_cards_for_player_count(player_count, deck_size)
    return {
        'player_count': player_count,
        'deck_size': deck_size,
        'max_cards': max_cards,
        **config.to_dict(),
        'descriptions': [describe_stage(stage, max_cards) for stage in config.stages],
        'cards_per_round': card_schedule(config, max_cards),
    }


@settings.route('/players', methods=['GET'])
def get_roster():
    return jsonify({'players': get_players()})


@settings.route('/players', methods=['PUT'])
def put_roster():
    data = request.get_json(silent=True) or {}
    if not isinstance(data.get('players'), list):
        raise ValidationRejected('players must be a list of names', reason='invalid_roster')
    players = clean_roster(data['players'])
    max_players = int(current_app.config.get('MAX_PLAYERS', 6))
    if not players:
        raise ValidationRejected('Add at least one player', reason='invalid_roster')
    if len(players) > max_players:
        raise ValidationRejected(f'At most {max_players} players can play', reason='too_many_players')

    session = _active_session()
    if session is not None:
        # Locked sessions raise before anything is stored
        session.set_players(players)
        channel.save_session(session, device_id=request.headers.get('X-Device-Id'))
    save_players(players)
    current_app.logger.info(f"[settings] players={players} applied_to_game={session is not None}")
    return jsonify({'players': players})


@settings.route('/deck-size', methods=['GET'])
def get_deck():
    return jsonify({'deck_size': get_deck_size(), 'options': list(DECK_SIZES)})


@settings.route('/deck-size', methods=['PUT'])
def put_deck():
    data = request.get_json(silent=True) or {}
    deck_size = data.get('deck_size')
    if deck_size not in DECK_SIZES:
        raise ValidationRejected(
            f'Deck size must be one of {", ".join(map(str, DECK_SIZES))}', reason='invalid_deck_size',
        )
    session = _active_session()
    if session is not None:
        session.set_deck_size(deck_size)
        channel.save_session(session, device_id=request.headers.get('X-Device-Id'))
    save_deck_size(deck_size)
    current_app.logger.info(f"[settings] deck_size={deck_size} applied_to_game={session is not None}")
    return jsonify({'deck_size': deck_size})


@settings.route('/stages', methods=['GET'])
def get_stages():
    players = get_players()
    deck_size = get_deck_size()
    custom = get_custom_stages()
    return jsonify({
        'custom_stages': custom,
        'preview': _preview(len(players), deck_size, custom),
    })


@settings.route('/stages', methods=['PUT'])
def put_stages():
    data = request.get_json(silent=True) or {}
    try:
        stored = save_custom_stages(data.get('stages'))
    except ValueError as exc:
        raise ValidationRejected(str(exc), reason='invalid_stages') from None
    current_app.logger.info(f"[settings] custom_stages={stored}")
    players = get_players()
    return jsonify({'custom_stages': stored, 'preview': _preview(len(players), get_deck_size(), stored)})


@settings.route('/stages', methods=['DELETE'])
def delete_stages():
    clear_custom_stages()
    current_app.logger.info('[settings] custom stages cleared, using built-in table')
    return jsonify({'custom_stages': None})


@settings.route('/stages/presets', methods=['GET'])
def get_presets():
    player_count = _int_arg('players', len(get_players()))
    deck_size = _int_arg('deck', get_deck_size())
    names = ['default'] + list(PRESETS)
    return jsonify({name: preset_stage_types(name, player_count, deck_size) for name in names})


@settings.route('/stages/preview', methods=['GET'])
def preview_stages():
    """Resolve a stage list without saving it; ``stages`` is comma separated."""
    player_count = _int_arg('players', len(get_players()))
    deck_size = _int_arg('deck', get_deck_size())
    raw = request.args.get('stages')
    stage_types = None
    if raw:
        try:
            stage_types = [t.value for t in parse_stage_types(raw.split(','))]
        except ValueError as exc:
            raise ValidationRejected(str(exc), reason='invalid_stages') from None
    return jsonify(_preview(player_count, deck_size, stage_types))
