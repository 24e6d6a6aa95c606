"""
Bourbon Buddy HTTP API and realtime channel.

Thin Flask handlers over the collection, video, discovery and live
services, plus the Mux webhook receiver and SocketIO events for live
tasting rooms.
"""

import logging
import socket
import threading
from dataclasses import dataclass
from functools import wraps
from pathlib import Path
from typing import Any, Dict, Optional

import psutil
from flask import Flask, Response, jsonify, make_response, request
from flask_cors import CORS
from flask_socketio import SocketIO, emit, join_room, leave_room
from werkzeug.exceptions import HTTPException

from collection.catalog import search_catalog
from collection.manager import CollectionManager
from discovery.cache import ProviderCache
from discovery.proxy import fetch_image
from discovery.service import ImageSearchService
from discovery.web_search import WebSearchClient
from live.interactions import StreamInteractions
from live.rooms import StreamRoomRegistry
from shared.auth import register_user, require_user, resolve_user, parse_bearer
from shared.config import AppConfig, load_config, save_config
from shared.constants import (
    API_VERSION,
    CSRF_COOKIE_NAME,
    CSRF_HEADER_NAME,
    CSRF_COOKIE_MAX_AGE,
    DEFAULT_CACHE_DIR,
    DEFAULT_API_PORT,
    IMAGE_CACHE_FILENAME,
)
from shared.database import DatabaseManager
from shared.errors import BourbonBuddyError, MuxError, ValidationError, WebhookVerificationError
from shared.models import SecurityEventType, Severity, Video
from shared.security import CsrfProtector, SecurityMonitor, is_trusted_network
from video.manager import VideoManager
from video.mux_client import MuxClient
from video.sync import VideoStatusSync
from video.webhooks import SIGNATURE_HEADER, WebhookProcessor, parse_event, verify_signature

logger = logging.getLogger(__name__)

ADMIN_ONLY_MESSAGE = "Admin actions restricted to Home Network / Tailscale"

app = Flask(__name__)
CORS(app)
socketio = SocketIO(app, cors_allowed_origins="*", async_mode="threading")


@dataclass
class Core:
    config: AppConfig
    db: DatabaseManager
    mux: MuxClient
    collection: CollectionManager
    videos: VideoManager
    webhooks: WebhookProcessor
    sync: VideoStatusSync
    images: ImageSearchService
    web_search: WebSearchClient
    security: SecurityMonitor
    interactions: StreamInteractions


# Global instances
_core: Optional[Core] = None
_core_lock = threading.Lock()
csrf = CsrfProtector()


def _broadcast_video(video: Video):
    socketio.emit('video_updated', video.to_dict())


def _broadcast_poll_ended(stream_id: str, poll: Dict[str, Any]):
    socketio.emit('poll-ended', {
        "pollId": poll["id"],
        "results": poll["results"],
        "totalVotes": poll["totalVotes"],
        "poll": poll,
    }, to=stream_id)


rooms = StreamRoomRegistry(on_poll_ended=_broadcast_poll_ended)


def init_services(
    config: Optional[AppConfig] = None,
    mux_client: Optional[MuxClient] = None,
    image_service: Optional[ImageSearchService] = None,
    web_search_client: Optional[WebSearchClient] = None,
) -> Core:
    """(Re)build every service from config. Tests pass fakes for the network clients."""
    global _core
    config = config or load_config()
    db = DatabaseManager(str(config.resolved_database_path))
    mux = mux_client or MuxClient(config.mux_token_id, config.mux_token_secret)
    if image_service is None:
        cache_file = Path(DEFAULT_CACHE_DIR).expanduser() / IMAGE_CACHE_FILENAME
        image_service = ImageSearchService(cache=ProviderCache(cache_file))
    core = Core(
        config=config,
        db=db,
        mux=mux,
        collection=CollectionManager(db),
        videos=VideoManager(db, mux),
        webhooks=WebhookProcessor(db, on_change=_broadcast_video),
        sync=VideoStatusSync(db, mux, on_change=_broadcast_video),
        images=image_service,
        web_search=web_search_client or WebSearchClient(config.serpapi_key),
        security=SecurityMonitor(db, config.security_log_dir),
        interactions=StreamInteractions(db),
    )
    with _core_lock:
        _core = core
    logger.info(f"API: services initialised (database {config.resolved_database_path})")
    return core


def get_core() -> Core:
    if _core is None:
        init_services()
    return _core


# --- Request helpers ---

def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def client_ip() -> Optional[str]:
    forwarded = request.headers.get('X-Forwarded-For')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.headers.get('X-Real-IP') or request.remote_addr


def log_security_event(event_type: SecurityEventType, metadata: Dict[str, Any], severity: Severity, user_id=None):
    get_core().security.log_event(
        event_type,
        metadata,
        severity=severity,
        ip=client_ip(),
        user_agent=request.headers.get('User-Agent'),
        user_id=user_id,
    )


def current_user(required: bool = True):
    core = get_core()
    header = request.headers.get('Authorization')
    if not required:
        return resolve_user(core.db, header)
    try:
        return require_user(core.db, header)
    except BourbonBuddyError:
        if parse_bearer(header):
            log_security_event(SecurityEventType.AUTH_FAILURE, {"endpoint": request.path, "reason": "invalid_token"}, Severity.LOW)
        raise


def csrf_protected(f):
    """Reject state-changing requests without a valid CSRF header/cookie pair."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        ok, reason = csrf.validate(request.cookies.get(CSRF_COOKIE_NAME), request.headers.get(CSRF_HEADER_NAME))
        if not ok:
            log_security_event(
                SecurityEventType.CSRF_VALIDATION_FAILURE,
                {"endpoint": request.path, "method": request.method, "reason": reason},
                Severity.MEDIUM,
            )
            return jsonify({"error": "Invalid CSRF token"}), 403
        return f(*args, **kwargs)
    return wrapper


def trusted_only(f):
    @wraps(f)
    def wrapper(*args, **kwargs):
        # SECURITY: admin endpoints only from local/Tailscale networks
        if not is_trusted_network(request.remote_addr):
            log_security_event(SecurityEventType.PERMISSION_VIOLATION, {"endpoint": request.path}, Severity.MEDIUM)
            return jsonify({"error": ADMIN_ONLY_MESSAGE}), 403
        return f(*args, **kwargs)
    return wrapper


def _int_arg(name: str, default: int) -> int:
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        raise ValidationError("Validation error", {name: "Must be an integer"})


@app.errorhandler(BourbonBuddyError)
def handle_app_error(e):
    body = {"error": str(e)}
    if isinstance(e, ValidationError) and e.details:
        body["details"] = e.details
    status = 502 if isinstance(e, MuxError) else e.status_code
    return jsonify(body), status


@app.errorhandler(Exception)
def handle_unexpected_error(e):
    if isinstance(e, HTTPException):
        return e
    logger.exception(f"Unhandled error on {request.method} {request.path}: {e}")
    return jsonify({"error": "Internal server error"}), 500


# --- Service ---

@app.route('/api/health')
def health_check():
    core = get_core()
    return jsonify({"status": "healthy", "mux_configured": core.mux.is_configured})


@app.route('/')
def home():
    return jsonify({
        "status": "online",
        "service": "Bourbon Buddy API",
        "version": API_VERSION
    })


@app.route('/api/csrf', methods=['GET'])
def issue_csrf_token():
    secret, token = csrf.generate()
    response = make_response(jsonify({"csrfToken": token}))
    response.set_cookie(
        CSRF_COOKIE_NAME,
        csrf.cookie_value(secret),
        max_age=CSRF_COOKIE_MAX_AGE,
        httponly=True,
        samesite='Lax',
        secure=request.is_secure,
        path='/',
    )
    return response


@app.route('/api/users', methods=['POST'])
def create_user():
    data = _json_body()
    user, token = register_user(get_core().db, data.get('name'), data.get('email'), data.get('image'))
    log_security_event(SecurityEventType.USER_CREATED, {"userId": user.id}, Severity.LOW, user_id=user.id)
    return jsonify({"user": user.to_dict(), "token": token}), 201


# --- Collection Endpoints ---

@app.route('/api/collection', methods=['GET'])
def list_collection():
    user = current_user()
    favorites = request.args.get('favorite', '').lower() in ('1', 'true', 'yes')
    spirits = get_core().collection.list(
        user.id,
        category=request.args.get('category') or None,
        spirit_type=request.args.get('type') or None,
        favorites_only=favorites,
        query=request.args.get('q') or None,
        sort=request.args.get('sort', 'updated'),
    )
    return jsonify({"spirits": [s.to_dict() for s in spirits]})


@app.route('/api/collection', methods=['POST'])
@csrf_protected
def add_to_collection():
    user = current_user()
    spirit = get_core().collection.add(user.id, _json_body())
    return jsonify({"spirit": spirit.to_dict()}), 201


@app.route('/api/collection/stats', methods=['GET'])
def collection_stats():
    user = current_user()
    return jsonify(get_core().collection.stats(user.id))


@app.route('/api/collection/<spirit_id>', methods=['GET'])
def get_spirit(spirit_id):
    user = current_user()
    return jsonify({"spirit": get_core().collection.get(user.id, spirit_id).to_dict()})


@app.route('/api/collection/<spirit_id>', methods=['PUT', 'PATCH'])
@csrf_protected
def update_spirit(spirit_id):
    user = current_user()
    spirit = get_core().collection.update(user.id, spirit_id, _json_body())
    return jsonify({"spirit": spirit.to_dict()})


@app.route('/api/collection/<spirit_id>', methods=['DELETE'])
@csrf_protected
def delete_spirit(spirit_id):
    user = current_user()
    get_core().collection.remove(user.id, spirit_id)
    return jsonify({"status": "deleted", "id": spirit_id})


@app.route('/api/collection/<spirit_id>/favorite', methods=['POST'])
@csrf_protected
def toggle_favorite(spirit_id):
    user = current_user()
    spirit = get_core().collection.toggle_favorite(user.id, spirit_id)
    return jsonify({"spirit": spirit.to_dict()})


# --- Spirit Discovery ---

@app.route('/api/spirits/search', methods=['GET'])
def search_spirits():
    query = request.args.get('query', '')
    try:
        return jsonify(search_catalog(query))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400


@app.route('/api/spirits/featured', methods=['GET'])
def featured_spirits():
    spirits = get_core().collection.featured(_int_arg('limit', 10))
    return jsonify({"spirits": [s.to_dict() for s in spirits]})


@app.route('/api/spirits/image-search', methods=['GET'])
def image_search():
    try:
        result = get_core().images.search(
            name=request.args.get('name'),
            brand=request.args.get('brand'),
            spirit_type=request.args.get('type'),
            year=request.args.get('year'),
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(result)


@app.route('/api/web-search', methods=['GET'])
def web_search():
    try:
        result = get_core().web_search.search(
            request.args.get('query', ''),
            distillery=request.args.get('distillery', ''),
            release_year=request.args.get('releaseYear', ''),
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(result)


@app.route('/api/image-proxy', methods=['GET'])
def image_proxy():
    try:
        fetched = fetch_image(request.args.get('url', ''))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    if fetched is None:
        return jsonify({"error": "Failed to fetch image"}), 502
    content, content_type = fetched
    return Response(content, mimetype=content_type, headers={
        "Cache-Control": "public, max-age=86400",
        "Access-Control-Allow-Origin": "*",
    })


# --- Video Endpoints ---

@app.route('/api/videos', methods=['GET'])
def list_videos():
    videos = get_core().videos.list_public(limit=_int_arg('limit', 20), offset=_int_arg('offset', 0))
    return jsonify({"videos": [v.to_dict() for v in videos]})


@app.route('/api/videos', methods=['POST'])
def create_video_upload():
    user = current_user()
    core = get_core()
    if not core.mux.is_configured:
        return jsonify({"error": "Video uploads are not configured"}), 503
    data = _json_body()
    result = core.videos.create_upload(
        data.get('title'),
        description=data.get('description'),
        user_id=user.id,
        cors_origin=core.config.cors_origin,
    )
    return jsonify(result), 201


@app.route('/api/videos/sync-status', methods=['GET', 'POST'])
@trusted_only
def sync_video_status():
    core = get_core()
    if not core.mux.is_configured:
        return jsonify({"error": "Mux credentials are not configured"}), 503
    video_id = request.args.get('videoId') or _json_body().get('videoId')
    return jsonify(core.sync.sync(video_id))


@app.route('/api/videos/<video_id>', methods=['GET'])
def get_video(video_id):
    return jsonify({"video": get_core().videos.get(video_id).to_dict()})


@app.route('/api/videos/<video_id>', methods=['DELETE'])
def delete_video(video_id):
    user = current_user()
    get_core().videos.delete(video_id, user.id)
    return jsonify({"status": "deleted", "id": video_id})


@app.route('/api/videos/<video_id>/view', methods=['POST'])
def record_video_view(video_id):
    views = get_core().videos.record_view(video_id)
    return jsonify({"id": video_id, "views": views})


@app.route('/api/webhooks/mux', methods=['POST'])
def mux_webhook():
    core = get_core()
    body = request.get_data()
    try:
        verify_signature(body, request.headers.get(SIGNATURE_HEADER), core.config.mux_webhook_secret)
    except WebhookVerificationError as e:
        log_security_event(SecurityEventType.WEBHOOK_REJECTED, {"endpoint": request.path, "reason": str(e)}, Severity.MEDIUM)
        return jsonify({"error": str(e)}), 401
    except BourbonBuddyError as e:
        logger.error(f"Mux webhook rejected: {e}")
        return jsonify({"error": "Server configuration error"}), 500

    payload = request.get_json(force=True, silent=True)
    event = parse_event(payload)
    result, status = core.webhooks.handle(event)
    return jsonify(result), status


# --- Comments ---

@app.route('/api/comments', methods=['GET'])
def list_comments():
    video_id = request.args.get('videoId')
    if not video_id:
        return jsonify({"error": "videoId is required"}), 400
    comments = get_core().videos.list_comments(video_id)
    return jsonify({"comments": [c.to_dict() for c in comments]})


@app.route('/api/comments', methods=['POST'])
def add_comment():
    user = current_user()
    data = _json_body()
    comment = get_core().videos.add_comment(
        data.get('videoId'), user.id, data.get('content'), review_id=data.get('reviewId')
    )
    return jsonify({"comment": comment.to_dict()}), 201


# --- Live Streams ---

@app.route('/api/streams', methods=['GET'])
def list_streams():
    core = get_core()
    streams = []
    for stream in core.interactions.list_live():
        item = stream.to_dict()
        item["viewerCount"] = rooms.viewer_count(stream.id)
        streams.append(item)
    return jsonify({"streams": streams})


@app.route('/api/streams', methods=['POST'])
def create_stream():
    user = current_user()
    data = _json_body()
    stream = get_core().interactions.create_stream(
        user.id, data.get('title'), data.get('description'), data.get('spiritId')
    )
    return jsonify({"stream": stream.to_dict()}), 201


@app.route('/api/streams/<stream_id>/end', methods=['POST'])
def end_stream(stream_id):
    user = current_user()
    stream = get_core().interactions.end_stream(stream_id, user.id)
    socketio.emit('stream-ended', {"streamId": stream_id}, to=stream_id)
    return jsonify({"stream": stream.to_dict()})


@app.route('/api/streams/<stream_id>/like', methods=['POST'])
def like_stream(stream_id):
    user = current_user()
    return jsonify(get_core().interactions.like(stream_id, user.id))


@app.route('/api/streams/<stream_id>/report', methods=['POST'])
def report_stream(stream_id):
    user = current_user()
    report = get_core().interactions.report(stream_id, user.id, _json_body().get('reason'))
    return jsonify({"success": True, "report": report.to_dict()}), 201


@app.route('/api/streams/<stream_id>/tip', methods=['POST'])
def tip_stream(stream_id):
    user = current_user()
    data = _json_body()
    tip = get_core().interactions.tip(stream_id, user.id, data.get('amount'), data.get('message'))
    return jsonify({"success": True, "tip": tip.to_dict()}), 201


@app.route('/api/streams/<stream_id>/interactions', methods=['GET'])
def stream_interactions(stream_id):
    user = current_user(required=False)
    return jsonify(get_core().interactions.summary(stream_id, user.id if user else None))


# --- Security ---

@app.route('/api/security/events', methods=['GET'])
@trusted_only
def get_security_events():
    events = get_core().security.recent_events(
        limit=_int_arg('limit', 100),
        types=request.args.getlist('type') or None,
        min_severity=request.args.get('minSeverity') or None,
        user_id=request.args.get('userId') or None,
        ip=request.args.get('ip') or None,
        start=request.args.get('start') or None,
        end=request.args.get('end') or None,
    )
    return jsonify({"events": [e.to_dict() for e in events]})


@app.route('/api/csp-report', methods=['POST'])
def csp_report():
    # Browsers post application/csp-report, so parse regardless of content type
    payload = request.get_json(force=True, silent=True) or {}
    report = payload.get('csp-report', payload) if isinstance(payload, dict) else {}
    if not isinstance(report, dict):
        report = {}
    log_security_event(SecurityEventType.CSP_VIOLATION, {
        "blockedUri": report.get('blocked-uri'),
        "violatedDirective": report.get('violated-directive'),
        "documentUri": report.get('document-uri'),
    }, Severity.LOW)
    return '', 204


# --- Config ---

@app.route('/api/config', methods=['GET'])
@trusted_only
def get_config():
    return jsonify(get_core().config.to_public_dict())


@app.route('/api/config', methods=['POST'])
@trusted_only
def update_config():
    core = get_core()
    try:
        config = core.config.merge(_json_body())
    except (TypeError, ValueError) as e:
        return jsonify({"error": str(e)}), 400
    save_config(config)

    # Reload core
    init_services(config)
    return jsonify({"status": "updated"})


# --- Realtime: live tasting rooms ---

def _stream_host_allowed(stream_id: str, token: Optional[str]) -> bool:
    """A host claim for a registered stream must come with the host's API token."""
    core = get_core()
    stream = core.db.get_stream(stream_id)
    if stream is None:
        return True
    user = resolve_user(core.db, f"Bearer {token}") if token else None
    return bool(user and user.id == stream.host_id)


@socketio.on('connect')
def on_connect(auth=None):
    emit('connection_confirmed', {"id": request.sid})


@socketio.on('join-stream')
def on_join_stream(data):
    if isinstance(data, str):
        data = {"streamId": data}
    if not isinstance(data, dict) or not data.get('streamId'):
        emit('error', 'Invalid stream data')
        return
    stream_id = data['streamId']
    is_host = data.get('isHost') is True and _stream_host_allowed(stream_id, data.get('token'))

    join_room(stream_id)
    joined = rooms.join(request.sid, stream_id, user_name=data.get('userName'), is_host=is_host)
    emit('viewer-count', joined['count'], to=stream_id)
    if joined['history']:
        emit('chat-history', joined['history'])
    if joined['activePolls']:
        emit('active-polls', joined['activePolls'])
    emit('joined-stream', {
        "streamId": stream_id,
        "count": joined['count'],
        "userName": joined['userName'],
        "isHost": joined['isHost'],
        "hostToken": joined['hostToken'],
    })


@socketio.on('leave-stream')
def on_leave_stream(data=None):
    left = rooms.leave(request.sid)
    if left:
        leave_room(left['streamId'])
        emit('viewer-count', left['count'], to=left['streamId'])


@socketio.on('chat-message')
def on_chat_message(data):
    data = data if isinstance(data, dict) else {}
    try:
        message = rooms.add_chat_message(request.sid, data.get('streamId'), data.get('message'), data.get('userName'))
    except BourbonBuddyError as e:
        emit('error', str(e))
        return
    emit('chat-message', message, to=data['streamId'])


@socketio.on('stream-poll')
def on_stream_poll(data):
    data = data if isinstance(data, dict) else {}
    stream_id = data.get('streamId')
    try:
        poll = rooms.create_poll(request.sid, stream_id, data.get('poll'), host_token=data.get('hostToken'))
    except BourbonBuddyError as e:
        return {"error": str(e)}
    emit('stream-poll', {"poll": poll}, to=stream_id)
    return {"success": True}


@socketio.on('poll-vote')
def on_poll_vote(data):
    data = data if isinstance(data, dict) else {}
    stream_id = data.get('streamId')
    vote = data.get('vote') if isinstance(data.get('vote'), dict) else {}
    try:
        tally = rooms.vote(stream_id, vote.get('pollId'), vote.get('optionId'), vote.get('userId'))
    except BourbonBuddyError as e:
        return {"error": str(e)}
    emit('poll-update', tally, to=stream_id)
    return {"success": True}


@socketio.on('end-poll')
def on_end_poll(data):
    data = data if isinstance(data, dict) else {}
    if not data.get('streamId') or not data.get('pollId'):
        return {"error": "Invalid data"}
    try:
        ended = rooms.end_poll(data['streamId'], data['pollId'], sid=request.sid)
    except BourbonBuddyError as e:
        return {"error": str(e)}
    return {"success": ended is not None}


@socketio.on('disconnect')
def on_disconnect(reason=None):
    left = rooms.leave(request.sid)
    if left and left['count'] > 0:
        socketio.emit('viewer-count', left['count'], to=left['streamId'])


# --- Server Management ---

def get_active_endpoints():
    """Gather all network-accessible IPv4 addresses for this machine."""
    endpoints = []
    try:
        for interface, addrs in psutil.net_if_addrs().items():
            # Skip bridge/virtual interfaces
            if any(skip in interface.lower() for skip in ['docker', 'br-', 'veth', 'lo']):
                continue
            for addr in addrs:
                if addr.family == socket.AF_INET and not addr.address.startswith('127.'):
                    if addr.address not in endpoints:
                        endpoints.append(addr.address)
    except (OSError, psutil.Error) as e:
        logger.debug(f"Interface discovery failed: {e}")
    return endpoints


def start_api(port=None, debug=False, config: Optional[AppConfig] = None):
    core = init_services(config)
    port = port or core.config.port or DEFAULT_API_PORT

    logger.info("--- Bourbon Buddy API Boot Sequence ---")
    logger.info(f"Local:  http://localhost:{port}/")
    for ip in get_active_endpoints():
        logger.info(f"Remote: http://{ip}:{port}/")
    if not core.mux.is_configured:
        logger.warning("Mux credentials missing: video uploads and sync are disabled")

    socketio.run(app, host='0.0.0.0', port=port, debug=debug, allow_unsafe_werkzeug=True)


if __name__ == '__main__':
    start_api()
