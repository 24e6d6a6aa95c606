"""Video rows, Mux direct uploads and comment threads."""

import logging
from typing import Any, Dict, List, Optional

from shared.constants import MAX_COMMENT_LENGTH, MAX_NAME_LENGTH, MAX_DESCRIPTION_LENGTH
from shared.database import DatabaseManager
from shared.errors import MuxError, NotFoundError, PermissionDenied, ValidationError
from shared.models import Comment, Video, VideoStatus, generate_id
from .mux_client import MuxClient

logger = logging.getLogger(__name__)


class VideoManager:
    def __init__(self, db: DatabaseManager, mux: MuxClient):
        self.db = db
        self.mux = mux

    def create_upload(
        self,
        title: str,
        description: Optional[str] = None,
        user_id: Optional[str] = None,
        cors_origin: str = "*",
    ) -> Dict[str, Any]:
        """
        Start a direct upload. The new video id is sent as the asset
        passthrough so webhooks can find the row before asset_created lands.

        Returns:
            {"video": ..., "uploadUrl": ..., "uploadId": ...}
        """
        title = (title or "").strip()
        errors = {}
        if not title:
            errors["title"] = "Title is required"
        elif len(title) > MAX_NAME_LENGTH:
            errors["title"] = f"Title must be less than {MAX_NAME_LENGTH} characters"
        if description and len(description) > MAX_DESCRIPTION_LENGTH:
            errors["description"] = f"Description must be less than {MAX_DESCRIPTION_LENGTH} characters"
        if errors:
            raise ValidationError("Validation error", errors)

        video_id = generate_id()
        upload = self.mux.create_upload(cors_origin=cors_origin, passthrough=video_id)
        video = Video(
            id=video_id,
            title=title,
            description=description or None,
            status=VideoStatus.UPLOADING.value,
            mux_upload_id=upload["id"],
            user_id=user_id,
        )
        self.db.insert_video(video)
        logger.info(f"Created Mux upload {upload['id']} for video {video_id}")
        return {"video": video.to_dict(), "uploadUrl": upload.get("url"), "uploadId": upload["id"]}

    def get(self, video_id: str) -> Video:
        video = self.db.get_video(video_id)
        if video is None:
            raise NotFoundError("Video not found")
        return video

    def list_public(self, limit: int = 20, offset: int = 0) -> List[Video]:
        return self.db.list_public_videos(limit=max(1, min(limit, 100)), offset=max(0, offset))

    def record_view(self, video_id: str) -> int:
        views = self.db.increment_views(video_id)
        if views is None:
            raise NotFoundError("Video not found")
        return views

    def delete(self, video_id: str, user_id: str) -> None:
        """Owner only. The Mux asset is removed best-effort before the row."""
        video = self.get(video_id)
        if video.user_id != user_id:
            raise PermissionDenied("You can only delete your own videos")
        self._delete_remote(video)
        self.db.delete_video(video_id)
        logger.info(f"Deleted video {video_id}")

    def delete_all(self) -> int:
        """Remove every video and its Mux asset. Used by the admin CLI."""
        count = 0
        for video in self.db.list_videos():
            self._delete_remote(video)
            self.db.delete_video(video.id)
            count += 1
        return count

    def _delete_remote(self, video: Video) -> None:
        if not video.mux_asset_id or not self.mux.is_configured:
            return
        try:
            self.mux.delete_asset(video.mux_asset_id)
        except MuxError as e:
            logger.warning(f"Could not delete Mux asset {video.mux_asset_id}: {e}")

    # --- Comments ---

    def add_comment(self, video_id: str, user_id: str, content: str, review_id: Optional[str] = None) -> Comment:
        content = (content or "").strip()
        if not content:
            raise ValidationError("Validation error", {"content": "Comment cannot be empty"})
        if len(content) > MAX_COMMENT_LENGTH:
            raise ValidationError("Validation error", {"content": f"Comment must be less than {MAX_COMMENT_LENGTH} characters"})
        self.get(video_id)
        comment = Comment(id=generate_id(), content=content, video_id=video_id, user_id=user_id, review_id=review_id)
        return self.db.insert_comment(comment)

    def list_comments(self, video_id: str) -> List[Comment]:
        return self.db.list_comments(video_id)
