#!/usr/bin/env python3
"""
Epoch Atlas Game Server

Unified Python server that handles:
- Static file serving (frontend with the globe)
- REST API endpoints (regions, periods, saved progress)
- Socket.IO for real-time rounds, including the one-second countdown
"""

# Gevent monkey patching must happen first
from gevent import monkey
monkey.patch_all()

import os
import logging
from flask import Flask, request, send_from_directory
from flask_socketio import SocketIO, emit

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# Determine static files directory
STATIC_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'static')

app = Flask(__name__, static_folder=STATIC_DIR, static_url_path='')
app.config['SECRET_KEY'] = os.environ.get('SESSION_SECRET') or os.urandom(24).hex()

# Register REST API routes
from routes import api
app.register_blueprint(api)

socketio = SocketIO(
    app,
    cors_allowed_origins="*",
    async_mode='gevent',
    ping_timeout=60,
    ping_interval=25
)


# ==================== Static File Serving ====================

@app.route('/')
def serve_index():
    """Serve the frontend's index.html."""
    return send_from_directory(STATIC_DIR, 'index.html')


@app.route('/<path:path>')
def serve_static(path):
    """Serve static files, falling back to index.html for SPA routing."""
    file_path = os.path.join(STATIC_DIR, path)
    if os.path.isfile(file_path):
        return send_from_directory(STATIC_DIR, path)
    return send_from_directory(STATIC_DIR, 'index.html')


from game_api import GameSession, MessageType
from saves import get_save_manager

save_manager = get_save_manager()
sessions = {}


def get_session(sid):
    """Get session or emit error"""
    if sid not in sessions:
        emit('message', {'type': 'error', 'data': {'message': 'Session not found'}})
        return None
    return sessions[sid]


def run_countdown(sid, request_id):
    """Feed one tick per second into the round until it stops answering"""
    while True:
        socketio.sleep(1)
        session_data = sessions.get(sid)
        if not session_data:
            return
        session = session_data['session']
        if not session.countdown_active(request_id):
            return
        for msg in session.tick():
            socketio.emit('message', msg, to=sid)


def send_messages(sid, messages):
    """Emit messages to the client, starting a countdown when a round opens"""
    for msg in messages:
        emit('message', msg)
        if msg['type'] == MessageType.ROUND_READY:
            socketio.start_background_task(run_countdown, sid, msg['data']['request_id'])


@socketio.on('connect')
def handle_connect():
    """Handle new client connection - wait for init event"""
    logger.info(f"Client connected: {request.sid}")


@socketio.on('init')
def handle_init(data):
    """Initialize game session with user_id"""
    sid = request.sid
    user_id = (data or {}).get('user_id', 'anonymous')
    logger.info(f"Initializing session for {sid} with user_id: {user_id}")

    session = GameSession(
        user_id=user_id,
        save_manager=save_manager,
        spawn=socketio.start_background_task,
    )
    sessions[sid] = {
        'session': session,
        'user_id': user_id
    }
    send_messages(sid, session.start())


@socketio.on('disconnect')
def handle_disconnect():
    """Handle client disconnection"""
    sid = request.sid
    logger.info(f"Client disconnected: {sid}")

    session_data = sessions.pop(sid, None)
    if session_data:
        session_data['session'].leave()


@socketio.on('select_region')
def handle_select_region(data):
    """Player picked a region by name"""
    sid = request.sid
    session_data = get_session(sid)
    if not session_data:
        return
    send_messages(sid, session_data['session'].select_region((data or {}).get('region', '')))


@socketio.on('region_click')
def handle_region_click(data):
    """Player clicked a map shape; data carries its properties"""
    sid = request.sid
    session_data = get_session(sid)
    if not session_data:
        return
    send_messages(sid, session_data['session'].region_click((data or {}).get('properties')))


@socketio.on('answer')
def handle_answer(data):
    """Answer one question"""
    sid = request.sid
    session_data = get_session(sid)
    if not session_data:
        return
    data = data or {}
    try:
        index = int(data.get('index'))
    except (TypeError, ValueError):
        emit('message', {'type': 'error', 'data': {'message': 'Invalid question index'}})
        return
    send_messages(sid, session_data['session'].answer(index, data.get('choice', '')))


@socketio.on('advance')
def handle_advance():
    """Move on to the next period"""
    sid = request.sid
    session_data = get_session(sid)
    if not session_data:
        return
    send_messages(sid, session_data['session'].advance())


@socketio.on('retry')
def handle_retry():
    """Retry a failed content request"""
    sid = request.sid
    session_data = get_session(sid)
    if not session_data:
        return
    send_messages(sid, session_data['session'].retry())


@socketio.on('leave')
def handle_leave():
    """Player left the round view"""
    sid = request.sid
    session_data = get_session(sid)
    if not session_data:
        return
    send_messages(sid, session_data['session'].leave())


@socketio.on('set_name')
def handle_set_name(data):
    """Set player name"""
    sid = request.sid
    session_data = get_session(sid)
    if not session_data:
        return
    send_messages(sid, session_data['session'].set_name((data or {}).get('name', '')))


@socketio.on('get_state')
def handle_get_state():
    """Get current game state"""
    sid = request.sid
    session_data = get_session(sid)
    if not session_data:
        return
    emit('message', {'type': 'state', 'data': session_data['session'].get_state()})


@socketio.on('save')
def handle_save():
    """Save current progress"""
    sid = request.sid
    session_data = get_session(sid)
    if not session_data:
        return
    send_messages(sid, session_data['session'].save())


@socketio.on('load')
def handle_load():
    """Reload saved progress"""
    sid = request.sid
    session_data = get_session(sid)
    if not session_data:
        return
    send_messages(sid, session_data['session'].load())


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    logger.info(f"Starting Epoch Atlas server on port {port}")
    logger.info(f"Static files directory: {STATIC_DIR}")

    socketio.run(app, host='0.0.0.0', port=port, debug=False)
