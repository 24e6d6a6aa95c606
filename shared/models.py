"""
Data models for spirits, videos, comments, live streams and security events.

This module defines the core data structures used throughout the platform.
Rows coming out of SQLite are converted with `from_dict`, which silently
drops columns the dataclass does not know about.
"""

from dataclasses import dataclass, asdict, field, fields
from typing import List, Dict, Optional, Any
from enum import Enum
import json
import uuid
from datetime import datetime, timezone

from shared.constants import PLACEHOLDER_PLAYBACK_PREFIX


def utc_now_iso() -> str:
    """Current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


def generate_id() -> str:
    """Generate a unique row ID."""
    return str(uuid.uuid4())


def _filter_fields(cls, data: Dict[str, Any]) -> Dict[str, Any]:
    field_names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in field_names}


def _load_note_list(value: Any) -> List[str]:
    if value is None or value == "":
        return []
    if isinstance(value, list):
        return [str(v) for v in value]
    try:
        parsed = json.loads(value)
        if isinstance(parsed, list):
            return [str(v) for v in parsed]
    except (TypeError, ValueError):
        pass
    return [part.strip() for part in str(value).split(",") if part.strip()]


class VideoStatus(Enum):
    """Lifecycle of a recorded tasting video on the video platform."""
    UPLOADING = "uploading"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"
    DELETED = "deleted"


class Severity(Enum):
    """Security event severity, ordered low < medium < high < critical."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    def __ge__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank

    def __lt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank


_SEVERITY_ORDER = [Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]


class SecurityEventType(Enum):
    CSRF_VALIDATION_FAILURE = "csrf_validation_failure"
    AUTH_FAILURE = "auth_failure"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"
    USER_CREATED = "user_created"
    PERMISSION_VIOLATION = "permission_violation"
    CSP_VIOLATION = "csp_violation"
    WEBHOOK_REJECTED = "webhook_rejected"


@dataclass
class User:
    id: str
    name: str
    email: str
    image: Optional[str] = None
    token_hash: Optional[str] = None
    created_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("token_hash", None)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'User':
        return cls(**_filter_fields(cls, data))


@dataclass
class Spirit:
    """
    A bottle in a user's collection.

    Attributes:
        id: Unique identifier (UUID)
        owner_id: ID of the user who owns the bottle
        name: Bottle name (e.g. "Eagle Rare 10 Year")
        brand: Producer / brand
        category: Top-level category id (whiskey, rum, ...)
        type: Subcategory (Bourbon, Rye, ...)
        rating: Integer rating on a 10..100 scale
        bottle_level: Remaining fill, 0..100 percent
        nose, palate, finish: Tasting note tags
        deleted_at: Set when the bottle was removed (soft delete)
    """
    id: str
    owner_id: str
    name: str
    brand: str
    category: str = "whiskey"
    type: str = ""
    description: Optional[str] = None
    release_year: Optional[int] = None
    proof: Optional[float] = None
    price: Optional[float] = None
    rating: Optional[int] = None
    is_favorite: bool = False
    date_acquired: Optional[str] = None
    bottle_size: Optional[str] = None
    distillery: Optional[str] = None
    bottle_level: Optional[int] = None
    image_url: Optional[str] = None
    web_image_url: Optional[str] = None
    nose: List[str] = field(default_factory=list)
    palate: List[str] = field(default_factory=list)
    finish: List[str] = field(default_factory=list)
    notes: Optional[str] = None
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)
    deleted_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert spirit to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Spirit':
        """Create Spirit from dictionary, filtering unknown keys and decoding note lists."""
        filtered = _filter_fields(cls, data)
        for key in ("nose", "palate", "finish"):
            if key in filtered:
                filtered[key] = _load_note_list(filtered[key])
        if "is_favorite" in filtered:
            filtered["is_favorite"] = bool(filtered["is_favorite"])
        return cls(**filtered)


@dataclass
class Video:
    """A recorded tasting session hosted on Mux."""
    id: str
    title: str
    status: str = VideoStatus.UPLOADING.value
    description: Optional[str] = None
    mux_upload_id: Optional[str] = None
    mux_asset_id: Optional[str] = None
    mux_playback_id: Optional[str] = None
    duration: Optional[float] = None
    aspect_ratio: Optional[str] = None
    thumbnail_time: float = 0
    user_id: Optional[str] = None
    publicly_listed: bool = True
    views: int = 0
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)

    @property
    def has_placeholder_playback(self) -> bool:
        return bool(self.mux_playback_id) and self.mux_playback_id.startswith(PLACEHOLDER_PLAYBACK_PREFIX)

    @property
    def needs_playback_id(self) -> bool:
        return not self.mux_playback_id or self.has_placeholder_playback

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Video':
        filtered = _filter_fields(cls, data)
        if "publicly_listed" in filtered:
            filtered["publicly_listed"] = bool(filtered["publicly_listed"])
        return cls(**filtered)


@dataclass
class Comment:
    id: str
    content: str
    video_id: str
    user_id: str
    review_id: Optional[str] = None
    created_at: str = field(default_factory=utc_now_iso)
    user_name: Optional[str] = None
    user_image: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["user"] = {"name": data.pop("user_name"), "image": data.pop("user_image")}
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Comment':
        return cls(**_filter_fields(cls, data))


@dataclass
class SecurityEvent:
    id: str
    type: str
    severity: str
    timestamp: str = field(default_factory=utc_now_iso)
    user_id: Optional[str] = None
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SecurityEvent':
        filtered = _filter_fields(cls, data)
        meta = filtered.get("metadata")
        if isinstance(meta, str):
            try:
                filtered["metadata"] = json.loads(meta) if meta else {}
            except ValueError:
                filtered["metadata"] = {"raw": meta}
        elif meta is None:
            filtered["metadata"] = {}
        return cls(**filtered)


@dataclass
class Stream:
    """A live tasting session."""
    id: str
    title: str
    host_id: str
    description: Optional[str] = None
    spirit_id: Optional[str] = None
    is_live: bool = True
    created_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Stream':
        filtered = _filter_fields(cls, data)
        if "is_live" in filtered:
            filtered["is_live"] = bool(filtered["is_live"])
        return cls(**filtered)


@dataclass
class StreamReport:
    id: str
    stream_id: str
    user_id: str
    reason: str
    status: str = "pending"
    created_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class StreamTip:
    id: str
    stream_id: str
    sender_id: str
    host_id: str
    amount: float
    message: Optional[str] = None
    created_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
