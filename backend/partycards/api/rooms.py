from flask import Blueprint, jsonify, request, current_app
from partycards.services.rooms.deck import CARD_TYPES, card_type
from partycards.services.rooms.errors import ErrorKind, StoreError


rooms = Blueprint('rooms', __name__)
card_types = Blueprint('card_types', __name__)


def _sync():
    return current_app.extensions['synchronizer']


def _error(kind: ErrorKind):
    return jsonify({'error': kind.message, 'kind': kind.code}), kind.http_status


def _failed(outcome):
    return _error(outcome.error)


def _snapshot_or_404(code):
    try:
        payload = _sync().snapshot(code)
    except StoreError:
        current_app.logger.warning(f"[read-failed] room={code}", exc_info=True)
        return _error(ErrorKind.CONFLICT)
    if payload is None:
        return _error(ErrorKind.NOT_FOUND)
    return jsonify(payload)


@card_types.route('/card-types', methods=['GET'])
def list_card_types():
    return jsonify(CARD_TYPES)


@rooms.route('', methods=['POST'])
def create_room():
    data = request.get_json(silent=True) or {}
    host_name = data.get('host_name') or data.get('hostName')
    if not host_name or not str(host_name).strip():
        return jsonify({'error': 'Host name is required'}), 400

    outcome = _sync().create(str(host_name))
    if not outcome.ok:
        return _failed(outcome)
    code, player_id = outcome.value
    current_app.logger.info(f"[create] room={code} host={player_id}")
    return jsonify({
        'room_code': code,
        'player_id': player_id,
        'state': outcome.state.snapshot(_sync().poll_interval_ms),
    }), 201


@rooms.route('/<string:code>/join', methods=['POST'])
def join_room(code):
    data = request.get_json(silent=True) or {}
    player_name = data.get('player_name') or data.get('playerName')
    if not player_name or not str(player_name).strip():
        return jsonify({'error': 'Player name is required'}), 400

    outcome = _sync().join(code, str(player_name))
    if not outcome.ok:
        return _failed(outcome)
    return jsonify({
        'room_code': outcome.state.code,
        'player_id': outcome.value,
        'state': outcome.state.snapshot(_sync().poll_interval_ms),
    }), 201


@rooms.route('/<string:code>', methods=['GET'])
def get_room(code):
    return _snapshot_or_404(code)


@rooms.route('/<string:code>/deck', methods=['GET'])
def get_deck(code):
    try:
        deck = _sync().deck(code)
    except StoreError:
        return _error(ErrorKind.CONFLICT)
    if deck is None:
        return _error(ErrorKind.NOT_FOUND)
    return jsonify({'deck': [card_type(c) for c in deck], 'length': len(deck)})


@rooms.route('/<string:code>/start', methods=['POST'])
def start_game(code):
    data = request.get_json(silent=True) or {}
    player_id = data.get('player_id') or data.get('playerId')
    if not player_id:
        return jsonify({'error': 'Player ID is required'}), 400

    outcome = _sync().start(code, str(player_id))
    if not outcome.ok:
        return _failed(outcome)
    return jsonify(outcome.state.snapshot(_sync().poll_interval_ms))


@rooms.route('/<string:code>/action', methods=['POST'])
def player_action(code):
    data = request.get_json(silent=True) or {}
    player_id = data.get('player_id') or data.get('playerId')
    action = data.get('action')
    if not all([player_id, action]):
        return jsonify({'error': 'Player ID and action are required'}), 400

    outcome = _sync().act(code, str(player_id), action)
    if not outcome.ok:
        return _failed(outcome)
    payload = outcome.state.snapshot(_sync().poll_interval_ms)
    payload['applied'] = outcome.applied
    payload['current_card_index'] = outcome.value
    return jsonify(payload)


@rooms.route('/<string:code>/heartbeat', methods=['POST'])
def heartbeat(code):
    data = request.get_json(silent=True) or {}
    player_id = data.get('player_id') or data.get('playerId')
    if not player_id:
        return jsonify({'error': 'Player ID is required'}), 400

    outcome = _sync().heartbeat(code, str(player_id))
    if not outcome.ok:
        return _failed(outcome)
    return jsonify({'ok': True})


@rooms.route('/<string:code>/leave', methods=['POST'])
def leave_room(code):
    data = request.get_json(silent=True) or {}
    player_id = data.get('player_id') or data.get('playerId')
    if not player_id:
        return jsonify({'error': 'Player ID is required'}), 400

    outcome = _sync().leave(code, str(player_id))
    if not outcome.ok:
        return _failed(outcome)
    return jsonify({'ok': True})
