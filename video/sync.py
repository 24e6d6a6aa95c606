"""
Polling reconciliation between local video rows and Mux assets.

Catches what webhooks missed: videos stuck in uploading/processing and
ready videos that never received a real playback id.
"""

import concurrent.futures
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from shared.constants import SYNC_PROCESSING_CUTOFF_MINUTES, SYNC_BATCH_LIMIT, SYNC_WORKERS
from shared.database import DatabaseManager
from shared.errors import MuxError, NotFoundError
from shared.models import Video, VideoStatus
from .mux_client import MuxClient

logger = logging.getLogger(__name__)

# Mux asset status -> local status
REMOTE_STATUS_MAP = {
    "preparing": VideoStatus.PROCESSING.value,
    "ready": VideoStatus.READY.value,
    "errored": VideoStatus.ERROR.value,
}

UPDATED_STATUSES = ("status_updated", "playback_id_updated", "metadata_updated")


class VideoStatusSync:
    def __init__(
        self,
        db: DatabaseManager,
        mux: MuxClient,
        cutoff_minutes: int = SYNC_PROCESSING_CUTOFF_MINUTES,
        batch_limit: int = SYNC_BATCH_LIMIT,
        workers: int = SYNC_WORKERS,
        on_change: Optional[Callable[[Video], None]] = None,
    ):
        self.db = db
        self.mux = mux
        self.cutoff_minutes = cutoff_minutes
        self.batch_limit = batch_limit
        self.workers = workers
        self.on_change = on_change

    def candidates(self, video_id: Optional[str] = None) -> List[Video]:
        if video_id:
            video = self.db.get_video(video_id)
            if video is None:
                raise NotFoundError(f"Video {video_id} not found")
            return [video]
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=self.cutoff_minutes)
        return self.db.reconciliation_candidates(cutoff.isoformat(), self.batch_limit)

    def sync(self, video_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Reconcile candidate videos with Mux.

        Returns:
            {"message", "checked", "updated", "results"}; each result has
            videoId, title and a status of skipped, no_asset_id,
            status_updated, playback_id_updated, metadata_updated or error.
        """
        videos = self.candidates(video_id)
        if not videos:
            return {"message": "No videos need syncing", "checked": 0, "updated": 0, "results": []}

        results: List[Dict[str, Any]] = []
        with concurrent.futures.ThreadPoolExecutor(max_workers=max(1, self.workers)) as executor:
            future_to_video = {executor.submit(self._sync_one, v): v for v in videos}
            for future in concurrent.futures.as_completed(future_to_video):
                video = future_to_video[future]
                try:
                    results.append(future.result())
                except Exception as e:
                    logger.error(f"Sync failed for video {video.id}: {e}")
                    results.append({"videoId": video.id, "title": video.title, "status": "error", "error": str(e)})

        updated = sum(1 for r in results if r["status"] in UPDATED_STATUSES)
        logger.info(f"Video sync checked {len(videos)}, updated {updated}")
        return {
            "message": f"Checked {len(videos)} videos, updated {updated}",
            "checked": len(videos),
            "updated": updated,
            "results": results,
        }

    def _sync_one(self, video: Video) -> Dict[str, Any]:
        result: Dict[str, Any] = {"videoId": video.id, "title": video.title}
        if not video.mux_asset_id:
            result["status"] = "no_asset_id"
            return result

        try:
            asset = self.mux.retrieve_asset(video.mux_asset_id)
        except MuxError as e:
            result.update(status="error", error=str(e))
            return result
        if asset is None:
            result.update(status="error", error="Asset not found on Mux")
            return result

        updates: Dict[str, Any] = {}
        new_status = REMOTE_STATUS_MAP.get(asset.get("status"), video.status)
        if new_status != video.status:
            updates["status"] = new_status
            result["oldStatus"] = video.status
            result["newStatus"] = new_status

        if new_status == VideoStatus.READY.value and video.needs_playback_id:
            playback_ids = asset.get("playback_ids") or []
            playback_id = playback_ids[0].get("id") if playback_ids else None
            if not playback_id:
                try:
                    playback_id = self.mux.create_playback_id(video.mux_asset_id).get("id")
                except MuxError as e:
                    result.update(status="error", error=f"Could not create playback id: {e}")
                    return result
            if playback_id and playback_id != video.mux_playback_id:
                updates["mux_playback_id"] = playback_id
                result["playbackId"] = playback_id

        duration = asset.get("duration")
        if duration is not None and duration != video.duration:
            updates["duration"] = duration
        aspect_ratio = asset.get("aspect_ratio")
        if aspect_ratio and aspect_ratio != video.aspect_ratio:
            updates["aspect_ratio"] = aspect_ratio

        if not updates:
            result["status"] = "skipped"
            return result

        saved = self.db.update_video(video.id, updates)
        if saved and self.on_change:
            self.on_change(saved)

        if "mux_playback_id" in updates:
            result["status"] = "playback_id_updated"
        elif "status" in updates:
            result["status"] = "status_updated"
        else:
            result["status"] = "metadata_updated"
            result["duration"] = updates.get("duration", video.duration)
            result["aspectRatio"] = updates.get("aspect_ratio", video.aspect_ratio)
        return result
