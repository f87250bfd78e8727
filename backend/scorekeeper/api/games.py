from flask import Blueprint, jsonify, request, current_app
import time

from scorekeeper.errors import InvalidTransition, NoActiveSession, ValidationRejected
from scorekeeper.services.games.display import build_display
from scorekeeper.services.games.scheduler import (
    cancel_transition as svc_cancel_transition,
    schedule_transition as svc_schedule_transition,
)
from scorekeeper.services.games.session import BIDDING, FINISHED, TRICKS, GameSession, compute_winner
from scorekeeper.services.history import archive_session
from scorekeeper.services.sync import channel, get_custom_stages, get_deck_size, get_players


games = Blueprint('games', __name__)

_last_controller_action: dict[str, float] = {}


def _device_id():
    return request.headers.get('X-Device-Id')


def _debounced(key: str, setting: str) -> bool:
    try:
        debounce_ms = int(current_app.config.get(setting, 0))
    except Exception:
        debounce_ms = 0
    if debounce_ms <= 0:
        return False
    now = time.time() * 1000.0
    last = _last_controller_action.get(key, 0)
    if now - last < debounce_ms:
        return True
    _last_controller_action[key] = now
    return False


def _load_session() -> GameSession:
    session = channel.load_session()
    if session is None:
        raise NoActiveSession('No game in progress; start a new one first')
    return session


def _save(session: GameSession) -> None:
    channel.save_session(session, device_id=_device_id())


def _state_payload(session: GameSession) -> dict:
    payload = session.to_dict()
    payload['total_rounds'] = session.total_rounds
    payload['max_cards'] = session.max_cards
    payload['dealer'] = session.dealer
    payload['first_player'] = session.first_player
    if session.open_round is not None:
        payload['bid_check'] = session.bid_check().to_dict()
        payload['trick_check'] = session.trick_check().to_dict()
    return payload


def _check_roster_size(players) -> None:
    max_players = int(current_app.config.get('MAX_PLAYERS', 6))
    if len(players) > max_players:
        raise ValidationRejected(f'At most {max_players} players can play', reason='too_many_players')


def _mapping_from_body(data: dict, plural: str, singular: str) -> dict:
    values = data.get(plural)
    if isinstance(values, dict):
        return values
    if 'player' in data and singular in data:
        return {data['player']: data[singular]}
    raise ValidationRejected(f'Send "{plural}" as {{player: value}} or "player" with "{singular}"',
                             reason='invalid_request')


def _archive_finished(session: GameSession):
    record = archive_session(session, device_id=_device_id())
    channel.clear_session()
    svc_cancel_transition()
    current_app.logger.info(f"[finish] winner={session.winner} scores={session.scores} game={record.game_id}")
    return record


@games.route('/state', methods=['GET'])
def get_state():
    session = _load_session()
    return jsonify(_state_payload(session))


@games.route('/new', methods=['POST'])
def new_game():
    data = request.get_json(silent=True) or {}
    dealer_rotation = data.get('dealer_rotation', current_app.config.get('DEALER_ROTATION', True))
    if not isinstance(dealer_rotation, bool):
        raise ValidationRejected('dealer_rotation must be true or false', reason='invalid_request')
    players = data.get('players') or get_players()
    _check_roster_size(players)
    # Validate the new game before touching the stored one
    session = GameSession.create(
        players,
        deck_size=data.get('deck_size') or get_deck_size(),
        stage_types=get_custom_stages(),
        dealer_rotation=dealer_rotation,
    )

    previous = channel.load_session()
    archived_id = None
    if previous is not None and previous.status != FINISHED and previous.has_scores():
        # Abandoned mid-game: keep it in the history as an early end
        if previous.winner is None:
            previous.winner = compute_winner(previous.scores)
        archived_id = archive_session(previous, premature=True, device_id=_device_id()).game_id

    svc_cancel_transition()
    _save(session)
    current_app.logger.info(
        f"[new-game] players={session.players} deck={session.deck_size} "
        f"custom_stages={bool(session.stage_types)} archived_previous={archived_id}"
    )
    payload = _state_payload(session)
    payload['archived_game_id'] = archived_id
    return jsonify(payload), 201


@games.route('/start', methods=['POST'])
def start_game():
    if _debounced('start', 'CONTROLLER_DEBOUNCE_MS'):
        return jsonify({'message': 'debounced'}), 202
    session = _load_session()
    min_players = int(current_app.config.get('MIN_PLAYERS', 2))
    if session.player_count < min_players:
        raise ValidationRejected(f'At least {min_players} players are required to start',
                                 reason='not_enough_players')
    session.start()
    _save(session)
    current_app.logger.info(
        f"[start] players={session.player_count} total_rounds={session.total_rounds} max_cards={session.max_cards}"
    )
    return jsonify(_state_payload(session))


@games.route('/reset', methods=['POST'])
def reset_game():
    """Discard the active game without archiving it."""
    svc_cancel_transition()
    channel.clear_session()
    current_app.logger.info('[reset] active game discarded')
    return jsonify({'message': 'Game reset'})


@games.route('/bids', methods=['POST'])
def set_bids():
    data = request.get_json(silent=True) or {}
    session = _load_session()
    session.set_bids(_mapping_from_body(data, 'bids', 'bid'))
    _save(session)
    return jsonify(_state_payload(session))


@games.route('/blind', methods=['POST'])
def toggle_blind():
    data = request.get_json(silent=True) or {}
    player = data.get('player')
    if not player:
        raise ValidationRejected('player is required', reason='invalid_request')
    if _debounced(f'blind:{player}', 'BLIND_TOGGLE_DEBOUNCE_MS'):
        return jsonify({'message': 'debounced'}), 202
    session = _load_session()
    enabled = session.toggle_blind(player)
    _save(session)
    current_app.logger.info(f"[blind] round={session.current_round} player={player} enabled={enabled}")
    payload = _state_payload(session)
    payload['blind'] = enabled
    return jsonify(payload)


@games.route('/special', methods=['POST'])
def set_special_game():
    data = request.get_json(silent=True) or {}
    session = _load_session()
    session.set_special_game(data.get('special_game'))
    _save(session)
    return jsonify(_state_payload(session))


@games.route('/phase', methods=['POST'])
def switch_phase():
    data = request.get_json(silent=True) or {}
    target = data.get('phase')
    session = _load_session()
    if target == TRICKS:
        session.switch_to_tricks()
    elif target == BIDDING:
        session.back_to_bidding()
    else:
        raise ValidationRejected(f'phase must be "{BIDDING}" or "{TRICKS}"', reason='invalid_request')
    _save(session)
    current_app.logger.info(f"[phase] round={session.current_round} -> {session.phase}")
    return jsonify(_state_payload(session))


@games.route('/tricks', methods=['POST'])
def set_tricks():
    data = request.get_json(silent=True) or {}
    session = _load_session()
    session.set_all_tricks(_mapping_from_body(data, 'tricks', 'tricks'))
    _save(session)
    return jsonify(_state_payload(session))


@games.route('/close', methods=['POST'])
def close_round():
    if _debounced('close', 'CONTROLLER_DEBOUNCE_MS'):
        return jsonify({'message': 'debounced'}), 202
    session = _load_session()
    record = session.close_round()
    current_app.logger.info(
        f"[round-close] round={record.round_number} stage={record.stage} cards={record.cards_per_hand} "
        f"points={record.points_by_player()}"
    )

    payload = {'closed_round': record.to_dict(), 'finished': session.status == FINISHED}
    if session.status == FINISHED:
        # Visualizers get the final scores before the slot is cleared
        _save(session)
        archived = _archive_finished(session)
        payload['winner'] = session.winner
        payload['archived_game_id'] = archived.game_id
        payload['session'] = session.to_dict()
        return jsonify(payload)

    _save(session)
    svc_schedule_transition(current_app._get_current_object(), session.current_round)
    payload['session'] = _state_payload(session)
    return jsonify(payload)


@games.route('/dealer-rotation', methods=['POST'])
def set_dealer_rotation():
    data = request.get_json(silent=True) or {}
    enabled = data.get('enabled')
    if not isinstance(enabled, bool):
        raise ValidationRejected('enabled must be true or false', reason='invalid_request')
    session = _load_session()
    if session.status == FINISHED:
        raise InvalidTransition('The game is already finished')
    session.set_dealer_rotation(enabled)
    _save(session)
    return jsonify(_state_payload(session))


@games.route('/dealer', methods=['GET'])
def get_dealer():
    session = _load_session()
    return jsonify({
        'dealer': session.dealer,
        'dealer_index': session.dealer_index,
        'next_dealer': session.next_dealer,
        'first_player': session.first_player,
        'blind_eligible_player': session.blind_eligible_player,
        'player_order': session.player_order(),
        'dealer_rotation': session.dealer_rotation,
    })


@games.route('/display', methods=['GET'])
def get_display():
    return jsonify(build_display(channel.load_session()))
