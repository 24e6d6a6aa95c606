"""
Mux webhook verification and event handling.

Events update the matching video row directly. There is no ordering or
idempotency protocol: each event overwrites the fields it carries.
"""

import hashlib
import hmac
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from shared.constants import WEBHOOK_TOLERANCE_SEC
from shared.database import DatabaseManager
from shared.errors import BourbonBuddyError, ValidationError, WebhookVerificationError
from shared.models import Video, VideoStatus

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "Mux-Signature"

ERROR_EVENTS = {"video.asset.errored", "video.upload.errored", "video.upload.cancelled"}


def _parse_signature_header(header: str) -> Tuple[int, List[str]]:
    timestamp = None
    signatures = []
    for part in header.split(","):
        key, sep, value = part.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                raise WebhookVerificationError("Malformed webhook signature header")
        elif key == "v1":
            signatures.append(value)
    if timestamp is None or not signatures:
        raise WebhookVerificationError("Malformed webhook signature header")
    return timestamp, signatures


def compute_signature(body: bytes, timestamp: int, secret: str) -> str:
    signed_payload = f"{timestamp}.".encode() + body
    return hmac.new(secret.encode(), signed_payload, hashlib.sha256).hexdigest()


def verify_signature(
    body: bytes,
    header: Optional[str],
    secret: Optional[str],
    tolerance: int = WEBHOOK_TOLERANCE_SEC,
    now: Optional[float] = None,
) -> None:
    """
    Check a `Mux-Signature: t=<unix>,v1=<hex>` header against the raw body.

    Raises:
        WebhookVerificationError: missing/malformed header, stale timestamp
            or signature mismatch
        BourbonBuddyError: the signing secret is not configured
    """
    if isinstance(body, str):
        body = body.encode()
    if not header:
        raise WebhookVerificationError("Missing webhook signature")
    timestamp, signatures = _parse_signature_header(header)

    current = time.time() if now is None else now
    if abs(current - timestamp) > tolerance:
        raise WebhookVerificationError("Webhook timestamp out of range")

    if not secret:
        raise BourbonBuddyError("Webhook signing secret is not configured")

    expected = compute_signature(body, timestamp, secret)
    if not any(hmac.compare_digest(expected, sig) for sig in signatures):
        raise WebhookVerificationError("Invalid webhook signature")


@dataclass
class WebhookEvent:
    type: str
    object_id: str
    object_type: str
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def data_id(self) -> str:
        return self.data.get("id", "")

    @property
    def playback_id(self) -> Optional[str]:
        ids = self.data.get("playback_ids") or []
        if ids and isinstance(ids[0], dict):
            return ids[0].get("id")
        return None


def parse_event(payload: Any) -> WebhookEvent:
    """Validate the envelope of a webhook payload."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid webhook payload", {"body": "Expected a JSON object"})

    errors = {}
    event_type = payload.get("type")
    obj = payload.get("object") if isinstance(payload.get("object"), dict) else {}
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    if not isinstance(event_type, str) or not event_type:
        errors["type"] = "Required"
    if not obj.get("id"):
        errors["object.id"] = "Required"
    if not obj.get("type"):
        errors["object.type"] = "Required"
    if not data.get("id"):
        errors["data.id"] = "Required"
    if errors:
        raise ValidationError("Invalid webhook payload", errors)

    return WebhookEvent(type=event_type, object_id=obj["id"], object_type=obj["type"], data=data)


class WebhookProcessor:
    """
    Applies Mux events to video rows.

    `handle` returns a (json_body, http_status) tuple so the Flask route
    stays a thin wrapper. `on_change` receives each video written.
    """

    def __init__(self, db: DatabaseManager, on_change: Optional[Callable[[Video], None]] = None):
        self.db = db
        self.on_change = on_change

    def _changed(self, video: Optional[Video]):
        if video and self.on_change:
            try:
                self.on_change(video)
            except Exception as e:
                logger.warning(f"Video change listener failed: {e}")

    def handle(self, event: WebhookEvent) -> Tuple[Dict[str, Any], int]:
        logger.info(f"Mux webhook {event.type} for {event.object_type} {event.object_id}")

        if event.type == "video.upload.asset_created":
            return self._asset_created(event)
        if event.type == "video.asset.ready":
            return self._asset_ready(event)
        if event.type in ERROR_EVENTS:
            return self._set_status(event, VideoStatus.ERROR)
        if event.type == "video.asset.deleted":
            return self._set_status(event, VideoStatus.DELETED)

        logger.info(f"Unhandled Mux webhook event: {event.type}")
        return {"received": True, "type": event.type}, 200

    def _asset_created(self, event: WebhookEvent):
        upload_id = event.data_id
        asset_id = event.data.get("asset_id")
        if not asset_id:
            return {"success": False, "error": "No asset ID in payload"}, 200

        video = self.db.get_video_by_upload_id(upload_id)
        if video is None:
            logger.warning(f"No video for upload {upload_id}")
            return {"error": "Video not found"}, 404

        video = self.db.update_video(video.id, {
            "mux_asset_id": asset_id,
            "status": VideoStatus.PROCESSING.value,
        })
        self._changed(video)
        logger.info(f"Upload {upload_id} created asset {asset_id} (video {video.id})")
        return {"success": True, "videoId": video.id}, 200

    def _asset_ready(self, event: WebhookEvent):
        asset_id = event.object_id
        video = self.db.get_video_by_asset_id(asset_id)
        if video is None:
            # ready can arrive before asset_created; the passthrough carries our video id
            passthrough = event.data.get("passthrough")
            if passthrough:
                video = self.db.get_video(passthrough)
        if video is None:
            logger.error(f"Could not find video with asset {asset_id}")
            return {"error": "Video not found"}, 404

        updates: Dict[str, Any] = {
            "mux_asset_id": asset_id,
            "status": VideoStatus.READY.value,
            "duration": event.data.get("duration"),
            "aspect_ratio": event.data.get("aspect_ratio"),
        }
        if event.playback_id:
            updates["mux_playback_id"] = event.playback_id
        video = self.db.update_video(video.id, updates)
        self._changed(video)
        return {"success": True, "videoId": video.id}, 200

    def _set_status(self, event: WebhookEvent, status: VideoStatus):
        if event.object_type == "upload":
            video = self.db.get_video_by_upload_id(event.object_id)
        else:
            video = self.db.get_video_by_asset_id(event.object_id)
        if video is None:
            logger.warning(f"{event.type}: no video for {event.object_type} {event.object_id}")
            return {"error": "Video not found"}, 404

        if status is VideoStatus.ERROR:
            logger.error(f"Mux {event.object_type} {event.object_id} failed ({event.type})")
        video = self.db.update_video(video.id, {"status": status.value})
        self._changed(video)
        return {"success": True, "videoId": video.id}, 200
