#!/usr/bin/env python3
"""
Flask Backend Server for Statecraft
Hosts simulation sessions and forwards their events to Socket.IO clients.
"""

import sys
import os
import json
import math
from flask import Flask, jsonify, request
from flask_socketio import SocketIO, emit, join_room
from flask_cors import CORS

# Add src directory to Python path
src_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'src')
sys.path.insert(0, src_path)

from core.event_system import EventType
from core.logger import get_logger
from core.settings import SettingsManager, parse_difficulty
from engine import GameSession
from systems.economy import POLICY_EFFECTS
from systems.persistence import SaveManager

logger = get_logger("server")

app = Flask(__name__)
app.config['SECRET_KEY'] = os.environ.get('STATECRAFT_SECRET_KEY', 'statecraft-dev-key')
CORS(app)
socketio = SocketIO(app, cors_allowed_origins="*")

settings = SettingsManager()
save_manager = SaveManager(save_dir=settings.get("save_dir", "data/saves"))

# Live sessions by id
game_sessions = {}

MAX_TURNS_PER_REQUEST = 52

# Events forwarded to the browser; turn:end is skipped because it carries the live state object
FORWARDED_EVENTS = (
    EventType.TURN_START,
    EventType.ECONOMIC_UPDATE,
    EventType.ECONOMIC_EVENT,
    EventType.APPROVAL_CHANGE,
    EventType.POLITICAL_EVENT_TRIGGERED,
    EventType.POLITICAL_EVENT_RESOLVED,
    EventType.ELECTION,
    EventType.VOTE_RESULT,
    EventType.CRISIS_GENERATED,
    EventType.CRISIS_RESPONSE_IMPLEMENTED,
    EventType.CRISIS_RESOLVED,
    EventType.CRISIS_ESCALATED,
    EventType.OPPOSITION_ACTION,
    EventType.DEBATE_INITIATED,
    EventType.DEBATE_CONCLUDED,
    EventType.INTERNATIONAL_UPDATE,
    EventType.POLICY_REJECTED,
    EventType.POLICY_IMPLEMENTATION_STARTED,
    EventType.POLICY_PHASE_CHANGE,
    EventType.POLICY_OPPOSITION_CHALLENGE,
    EventType.POLICY_COMPLETED,
    EventType.GAME_STARTED,
    EventType.GAME_PAUSED,
    EventType.GAME_RESUMED,
    EventType.ACHIEVEMENT_UNLOCKED,
    EventType.GAME_END,
)


def _forward_events(session_id, session):
    def forward(event):
        payload = json.loads(json.dumps(event.payload, default=str))
        socketio.emit(event.type.value, payload, to=session_id)

    for event_type in FORWARDED_EVENTS:
        session.event_bus.subscribe(event_type, forward)


def serialize_session(session):
    """Dashboard view of a session for the browser client"""
    state = session.summary()
    state['decisions'] = session.pending_decisions()
    state['recent_events'] = list(session.game_state.events.recent)
    state['achievements'] = [a.id for a in session.outcomes.unlocked_achievements()]
    state['programmes'] = session.policy_implementation.active_summary(session.game_state)
    state['clock'] = session.play_status()
    return state


def _register(session_id, session):
    previous = game_sessions.pop(session_id, None)
    if previous is not None:
        previous.dispose()
    _forward_events(session_id, session)
    game_sessions[session_id] = session


def _get_session(session_id):
    return game_sessions.get(session_id)


@app.route('/')
def index():
    return jsonify({'name': 'statecraft', 'sessions': len(game_sessions)})


@app.route('/api/new_game', methods=['POST'])
def new_game():
    """Start a new game"""
    data = request.get_json(silent=True) or {}
    difficulty = parse_difficulty(data.get('difficulty', 'Normal'))
    session_id = data.get('session_id', 'default')

    session = GameSession(seed=data.get('seed'), difficulty=difficulty,
                          settings=settings, save_manager=save_manager)
    _register(session_id, session)

    return jsonify({
        'success': True,
        'session_id': session_id,
        'game_state': serialize_session(session)
    })


@app.route('/api/game_state/<session_id>', methods=['GET'])
def get_game_state(session_id):
    """Get current game state"""
    session = _get_session(session_id)
    if session is None:
        return jsonify({'error': 'Session not found'}), 404
    return jsonify(serialize_session(session))


@app.route('/api/advance', methods=['POST'])
def advance():
    data = request.get_json(silent=True) or {}
    session = _get_session(data.get('session_id', 'default'))
    if session is None:
        return jsonify({'error': 'Session not found'}), 404

    try:
        turns = int(data.get('turns', 1))
    except (TypeError, ValueError):
        return jsonify({'error': 'turns must be an integer'}), 400
    if not 1 <= turns <= MAX_TURNS_PER_REQUEST:
        return jsonify({'error': f'turns must be between 1 and {MAX_TURNS_PER_REQUEST}'}), 400

    ran = session.advance_turns(turns)
    return jsonify({'success': True, 'turns_run': ran, 'game_state': serialize_session(session)})


@app.route('/api/play', methods=['POST'])
def play():
    """Start continuous play, or resume it when paused"""
    data = request.get_json(silent=True) or {}
    session = _get_session(data.get('session_id', 'default'))
    if session is None:
        return jsonify({'error': 'Session not found'}), 404
    ok = session.play()
    return jsonify({'success': ok, **session.play_status()})


@app.route('/api/pause', methods=['POST'])
def pause():
    data = request.get_json(silent=True) or {}
    session = _get_session(data.get('session_id', 'default'))
    if session is None:
        return jsonify({'error': 'Session not found'}), 404
    ok = session.pause()
    return jsonify({'success': ok, **session.play_status()})


@app.route('/api/speed', methods=['POST'])
def speed():
    """Set milliseconds per week; out-of-range values are clamped"""
    data = request.get_json(silent=True) or {}
    session = _get_session(data.get('session_id', 'default'))
    if session is None:
        return jsonify({'error': 'Session not found'}), 404
    try:
        speed_ms = float(data['speed_ms'])
        if not math.isfinite(speed_ms):
            raise ValueError(speed_ms)
    except (KeyError, TypeError, ValueError):
        return jsonify({'error': 'speed_ms must be a number'}), 400
    session.set_speed(speed_ms)
    return jsonify({'success': True, **session.play_status()})


@app.route('/api/intent', methods=['POST'])
def intent():
    """Apply a player decision: policy, event/crisis/debate response or trade negotiation"""
    data = request.get_json(silent=True) or {}
    session = _get_session(data.get('session_id', 'default'))
    if session is None:
        return jsonify({'error': 'Session not found'}), 404

    kind = data.get('intent')
    if kind == 'policy':
        if data.get('type') not in POLICY_EFFECTS:
            return jsonify({'error': f"Unknown policy type: {data.get('type')}"}), 400
        try:
            magnitude = None if data.get('magnitude') is None else float(data['magnitude'])
            duration = None if data.get('duration') is None else int(data['duration'])
        except (TypeError, ValueError):
            return jsonify({'error': 'magnitude must be a number and duration an integer'}), 400
        policy = session.implement_policy(data['type'], magnitude, duration)
        if policy is None:
            rejection = session.policy_implementation.last_rejection or {}
            return jsonify({'success': False, 'error': rejection.get('message', 'Policy rejected'),
                            'reason': rejection.get('reason'), 'game_state': serialize_session(session)})
        ok = True
    elif kind == 'event_response':
        ok = session.respond_to_event(data.get('event_id'), data.get('option_id'))
    elif kind == 'crisis_response':
        try:
            resources = float(data.get('resources', 1.0))
            if not math.isfinite(resources) or resources < 0:
                raise ValueError(resources)
        except (TypeError, ValueError):
            return jsonify({'error': 'resources must be a non-negative number'}), 400
        ok = session.respond_to_crisis(data.get('crisis_id'), data.get('response_id'), resources)
    elif kind == 'debate_response':
        ok = session.respond_to_debate(data.get('debate_id'), data.get('response_type', 'no_response'))
    elif kind == 'trade':
        ok = session.negotiate_trade(data.get('country'))
    else:
        return jsonify({'error': f'Unknown intent: {kind}'}), 400

    return jsonify({'success': ok, 'game_state': serialize_session(session)})


@app.route('/api/saves', methods=['GET'])
def list_saves():
    return jsonify({'saves': save_manager.list_saves()})


@app.route('/api/saves', methods=['POST'])
def save_game():
    data = request.get_json(silent=True) or {}
    session = _get_session(data.get('session_id', 'default'))
    if session is None:
        return jsonify({'error': 'Session not found'}), 404

    save_id = save_manager.save(session.snapshot(), data.get('name'))
    if save_id is None:
        return jsonify({'success': False, 'error': 'Save failed'}), 500
    return jsonify({'success': True, 'save_id': save_id})


@app.route('/api/saves/<save_id>/load', methods=['POST'])
def load_game(save_id):
    data = request.get_json(silent=True) or {}
    session_id = data.get('session_id', 'default')
    session = GameSession.load(save_manager, save_id, settings=settings)
    if session is None:
        return jsonify({'success': False, 'error': 'Save not found or corrupted'}), 404
    _register(session_id, session)
    return jsonify({'success': True, 'session_id': session_id, 'game_state': serialize_session(session)})


@app.route('/api/saves/<save_id>', methods=['DELETE'])
def delete_save(save_id):
    return jsonify({'success': save_manager.delete(save_id)})


@socketio.on('connect')
def handle_connect():
    """Handle client connection"""
    logger.info('Client connected')
    emit('connected', {'data': 'Connected to the Statecraft server'})


@socketio.on('join')
def handle_join(data):
    """Subscribe the client to one session's events"""
    session_id = (data or {}).get('session_id', 'default')
    join_room(session_id)
    emit('joined', {'session_id': session_id})


@socketio.on('disconnect')
def handle_disconnect():
    """Handle client disconnection"""
    logger.info('Client disconnected')


if __name__ == '__main__':
    print("=" * 60)
    print("   STATECRAFT")
    print("   Simulation API Server")
    print("=" * 60)
    print("\nListening on http://localhost:5000")
    print("\nPress CTRL+C to stop the server")
    print("=" * 60)
    socketio.run(app, host='0.0.0.0', port=5000, debug=True, allow_unsafe_werkzeug=True)
