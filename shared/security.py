"""
Security event monitoring and CSRF protection.

Events are stored in the security_events table, echoed to the log and,
when a log directory is configured, appended as JSON lines to
security-YYYY-MM-DD.log files.
"""

import base64
import hashlib
import hmac
import ipaddress
import json
import logging
import secrets
import sqlite3
import threading
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from shared.constants import (
    CSRF_COOKIE_MAX_AGE,
    CSRF_FAILURE_WINDOW_MINUTES,
    CSRF_FAILURE_THRESHOLD,
    MAX_SECURITY_EVENTS,
)
from shared.database import DatabaseManager
from shared.errors import ValidationError
from shared.models import SecurityEvent, SecurityEventType, Severity, generate_id, utc_now_iso

logger = logging.getLogger(__name__)

SEVERITY_LOG_LEVELS = {
    Severity.LOW: logging.INFO,
    Severity.MEDIUM: logging.WARNING,
    Severity.HIGH: logging.ERROR,
    Severity.CRITICAL: logging.CRITICAL,
}

LOG_FILE_PREFIX = "security-"


def is_trusted_network(remote_addr: Optional[str]) -> bool:
    """
    Trust loopback, private LAN ranges and Tailscale (100.x) addresses.
    Admin routes are only reachable from these.
    """
    if not remote_addr:
        return False
    try:
        ip = ipaddress.ip_address(remote_addr)
    except ValueError:
        return False
    is_tailscale = remote_addr.startswith('100.')
    return ip.is_private or ip.is_loopback or is_tailscale


def _enum_value(value: Union[str, SecurityEventType, Severity]) -> str:
    return value.value if hasattr(value, "value") else str(value)


class SecurityMonitor:
    def __init__(self, db: DatabaseManager, log_dir: Optional[str] = None):
        self.db = db
        self.log_dir = Path(log_dir).expanduser() if log_dir else None
        self._file_lock = threading.Lock()

    def log_event(
        self,
        event_type: Union[str, SecurityEventType],
        metadata: Optional[Dict[str, Any]] = None,
        severity: Union[str, Severity] = Severity.MEDIUM,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> SecurityEvent:
        """Record an event. Storage failures are logged, never raised."""
        metadata = dict(metadata or {})
        severity = Severity(_enum_value(severity))
        event = SecurityEvent(
            id=generate_id(),
            type=_enum_value(event_type),
            severity=severity.value,
            timestamp=utc_now_iso(),
            user_id=user_id or metadata.get("userId"),
            ip=ip,
            user_agent=user_agent,
            metadata=metadata,
        )

        logger.log(
            SEVERITY_LOG_LEVELS[severity],
            f"[SECURITY_EVENT] {severity.value.upper()} {event.type} ip={ip} {json.dumps(metadata, default=str)}",
        )

        try:
            self.db.insert_security_event(event)
        except sqlite3.Error as e:
            logger.error(f"Failed to log security event to database: {e}")
        self._write_file(event)

        if event.type == SecurityEventType.CSRF_VALIDATION_FAILURE.value:
            self._detect_csrf_attack(ip, metadata.get("endpoint"))
        return event

    def _write_file(self, event: SecurityEvent):
        if not self.log_dir:
            return
        day = event.timestamp[:10]
        path = self.log_dir / f"{LOG_FILE_PREFIX}{day}.log"
        try:
            with self._file_lock:
                self.log_dir.mkdir(parents=True, exist_ok=True)
                with open(path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(event.to_dict(), default=str) + "\n")
        except OSError as e:
            logger.error(f"Failed to write security log file {path}: {e}")

    def _detect_csrf_attack(self, ip: Optional[str], endpoint: Optional[str]):
        if not ip:
            return
        since = datetime.now(timezone.utc) - timedelta(minutes=CSRF_FAILURE_WINDOW_MINUTES)
        try:
            failures = self.db.count_security_events(
                SecurityEventType.CSRF_VALIDATION_FAILURE.value, ip, since.isoformat()
            )
        except sqlite3.Error as e:
            logger.error(f"Error detecting CSRF attack patterns: {e}")
            return
        if failures < CSRF_FAILURE_THRESHOLD:
            return

        logger.error(f"Potential CSRF attack: IP {ip} had {failures} failures in {CSRF_FAILURE_WINDOW_MINUTES} minutes")
        event = SecurityEvent(
            id=generate_id(),
            type=SecurityEventType.SUSPICIOUS_ACTIVITY.value,
            severity=Severity.HIGH.value,
            ip=ip,
            metadata={
                "reason": "multiple_csrf_failures",
                "failureCount": failures,
                "endpoint": endpoint,
                "timeWindow": f"{CSRF_FAILURE_WINDOW_MINUTES} minutes",
            },
        )
        try:
            self.db.insert_security_event(event)
        except sqlite3.Error as e:
            logger.error(f"Failed to record suspicious activity: {e}")
        self._write_file(event)

    def recent_events(
        self,
        limit: int = 100,
        types: Optional[Iterable[str]] = None,
        min_severity: Optional[Union[str, Severity]] = None,
        user_id: Optional[str] = None,
        ip: Optional[str] = None,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> List[SecurityEvent]:
        severities = None
        if min_severity:
            try:
                floor = Severity(_enum_value(min_severity))
            except ValueError:
                allowed = ", ".join(s.value for s in Severity)
                raise ValidationError("Validation error", {"minSeverity": f"Must be one of: {allowed}"})
            severities = [s.value for s in Severity if s >= floor]
        return self.db.query_security_events(
            limit=max(1, min(limit, MAX_SECURITY_EVENTS)),
            types=[_enum_value(t) for t in types] if types else None,
            severities=severities,
            user_id=user_id,
            ip=ip,
            start_iso=start,
            end_iso=end,
        )

    def reset(self) -> Dict[str, int]:
        """Delete all stored events and security log files."""
        deleted = self.db.clear_security_events()
        files = 0
        if self.log_dir and self.log_dir.exists():
            for path in self.log_dir.glob(f"{LOG_FILE_PREFIX}*.log"):
                path.unlink()
                files += 1
        logger.info(f"Security logs reset: {deleted} events, {files} files")
        return {"events_deleted": deleted, "files_deleted": files}


class CsrfProtector:
    """
    Stateless double-submit CSRF tokens.

    The secret lives in an httpOnly cookie as JSON {secret, createdAt};
    the client echoes a token `salt-HMAC(secret, salt)` in a header.
    """

    def __init__(self, max_age: int = CSRF_COOKIE_MAX_AGE):
        self.max_age = max_age

    @staticmethod
    def _sign(secret: str, salt: str) -> str:
        digest = hmac.new(secret.encode(), salt.encode(), hashlib.sha256).digest()
        return base64.urlsafe_b64encode(digest).decode().rstrip("=")

    def create_token(self, secret: str) -> str:
        salt = secrets.token_hex(8)
        return f"{salt}-{self._sign(secret, salt)}"

    def generate(self) -> Tuple[str, str]:
        """New (secret, token) pair."""
        secret = secrets.token_urlsafe(24)
        return secret, self.create_token(secret)

    def verify(self, secret: Optional[str], token: Optional[str]) -> bool:
        if not secret or not token:
            return False
        salt, sep, signature = token.partition("-")
        if not sep or not salt or not signature:
            return False
        return hmac.compare_digest(self._sign(secret, salt), signature)

    @staticmethod
    def cookie_value(secret: str, created_at: Optional[int] = None) -> str:
        if created_at is None:
            created_at = int(time.time() * 1000)
        return json.dumps({"secret": secret, "createdAt": created_at})

    @staticmethod
    def parse_cookie(value: Optional[str]) -> Optional[Tuple[str, int]]:
        """(secret, createdAt ms) from the cookie, or None if absent."""
        if not value:
            return None
        try:
            parsed = json.loads(value)
            if isinstance(parsed, dict) and parsed.get("secret"):
                return parsed["secret"], int(parsed.get("createdAt") or 0)
        except (ValueError, TypeError):
            pass
        # Bare secret from an older cookie format; treat as a minute old
        return value, int(time.time() * 1000) - 60000

    def is_expired(self, created_at_ms: int, now: Optional[float] = None) -> bool:
        current = time.time() if now is None else now
        return current - created_at_ms / 1000 > self.max_age

    def validate(self, cookie: Optional[str], token: Optional[str]) -> Tuple[bool, Optional[str]]:
        """Returns (ok, failure_reason)."""
        parsed = self.parse_cookie(cookie)
        if parsed is None:
            return False, "missing_cookie"
        if not token:
            return False, "missing_token"
        secret, created_at = parsed
        if self.is_expired(created_at):
            return False, "expired_secret"
        if not self.verify(secret, token):
            return False, "invalid_token"
        return True, None
