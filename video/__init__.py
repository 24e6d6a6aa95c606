"""Recorded tasting videos hosted on Mux: uploads, webhooks and status reconciliation."""

from .mux_client import MuxClient
from .manager import VideoManager
from .sync import VideoStatusSync
from .webhooks import WebhookProcessor, verify_signature

__all__ = ["MuxClient", "VideoManager", "VideoStatusSync", "WebhookProcessor", "verify_signature"]
