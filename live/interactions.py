"""Persistent stream interactions: likes, reports and tips."""

import logging
from typing import Any, Dict, List, Optional

from collection.validation import to_number
from shared.constants import MAX_NAME_LENGTH, MAX_DESCRIPTION_LENGTH, MAX_TIP_MESSAGE_LENGTH
from shared.database import DatabaseManager
from shared.errors import NotFoundError, PermissionDenied, ValidationError
from shared.models import Stream, StreamReport, StreamTip, generate_id

logger = logging.getLogger(__name__)


class StreamInteractions:
    def __init__(self, db: DatabaseManager):
        self.db = db

    def _stream(self, stream_id: str) -> Stream:
        stream = self.db.get_stream(stream_id)
        if stream is None:
            raise NotFoundError("Stream not found")
        return stream

    def create_stream(self, host_id: str, title: str, description: Optional[str] = None,
                      spirit_id: Optional[str] = None) -> Stream:
        title = (title or "").strip()
        if not title or len(title) > MAX_NAME_LENGTH:
            raise ValidationError("Validation error", {"title": f"Title must be 1-{MAX_NAME_LENGTH} characters"})
        if description and len(description) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError("Validation error", {"description": "Description is too long"})
        stream = Stream(id=generate_id(), title=title, host_id=host_id,
                        description=description or None, spirit_id=spirit_id or None)
        return self.db.insert_stream(stream)

    def list_live(self) -> List[Stream]:
        return self.db.list_live_streams()

    def end_stream(self, stream_id: str, host_id: str) -> Stream:
        stream = self._stream(stream_id)
        if stream.host_id != host_id:
            raise PermissionDenied("Only the host can end this stream")
        self.db.set_stream_live(stream_id, False)
        stream.is_live = False
        return stream

    def like(self, stream_id: str, user_id: str) -> Dict[str, Any]:
        """Toggle the user's like."""
        self._stream(stream_id)
        liked = self.db.toggle_stream_like(stream_id, user_id)
        return {"liked": liked, "likeCount": self.db.count_stream_likes(stream_id)}

    def report(self, stream_id: str, user_id: str, reason: str) -> StreamReport:
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Validation error", {"reason": "Reason is required"})
        stream = self._stream(stream_id)
        if stream.host_id == user_id:
            raise ValidationError("Cannot report your own stream")
        if self.db.has_pending_report(stream_id, user_id):
            raise ValidationError("You have already reported this stream")
        report = StreamReport(id=generate_id(), stream_id=stream_id, user_id=user_id, reason=reason)
        logger.info(f"Stream {stream_id} reported by {user_id}")
        return self.db.insert_stream_report(report)

    def tip(self, stream_id: str, sender_id: str, amount: Any, message: Optional[str] = None) -> StreamTip:
        try:
            amount = to_number(amount)
        except (TypeError, ValueError):
            raise ValidationError("Invalid request data", {"amount": "Amount must be a number"})
        if amount <= 0:
            raise ValidationError("Invalid request data", {"amount": "Amount must be positive"})
        if message and len(message) > MAX_TIP_MESSAGE_LENGTH:
            raise ValidationError("Invalid request data", {"message": f"Max {MAX_TIP_MESSAGE_LENGTH} characters"})
        stream = self._stream(stream_id)
        if stream.host_id == sender_id:
            raise ValidationError("Cannot tip your own stream")
        tip = StreamTip(id=generate_id(), stream_id=stream_id, sender_id=sender_id,
                        host_id=stream.host_id, amount=amount, message=message or None)
        return self.db.insert_stream_tip(tip)

    def summary(self, stream_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        """Like count for everyone; isLiked only for a known user."""
        likes = self.db.count_stream_likes(stream_id)
        if not user_id:
            return {"likes": likes, "isLiked": False}
        self._stream(stream_id)
        return {
            "likes": likes,
            "isLiked": self.db.has_liked_stream(stream_id, user_id),
            "tipTotal": self.db.stream_tip_total(stream_id),
        }
