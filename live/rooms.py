"""
In-memory state for live tasting rooms: viewers, chat history, host
tokens and polls. Nothing here is persisted; a room is forgotten when
its last viewer leaves.
"""

import logging
import secrets
import threading
import time
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, Set, Tuple

from shared.constants import CHAT_HISTORY_LIMIT, MAX_COMMENT_LENGTH
from shared.errors import NotFoundError, PermissionDenied, ValidationError
from shared.models import utc_now_iso

logger = logging.getLogger(__name__)

PollKey = Tuple[str, str]


class StreamRoomRegistry:
    """
    Thread-safe registry of live rooms keyed by stream id.

    Sessions are keyed by socket id and polls by (stream id, poll id).
    `on_poll_ended(stream_id, poll)` is called whenever a poll ends
    (timer, host action, or room emptied).
    """

    def __init__(
        self,
        history_limit: int = CHAT_HISTORY_LIMIT,
        on_poll_ended: Optional[Callable[[str, Dict[str, Any]], None]] = None,
    ):
        self.history_limit = history_limit
        self.on_poll_ended = on_poll_ended
        self._lock = threading.RLock()
        self._rooms: Dict[str, Set[str]] = {}
        self._sessions: Dict[str, Dict[str, Any]] = {}
        self._history: Dict[str, Deque[Dict[str, Any]]] = {}
        self._polls: Dict[PollKey, Dict[str, Any]] = {}
        self._votes: Dict[PollKey, Dict[str, str]] = {}
        self._timers: Dict[PollKey, threading.Timer] = {}
        self._host_tokens: Dict[str, Set[str]] = {}

    # --- Viewers ---

    def join(self, sid: str, stream_id: str, user_name: Optional[str] = None, is_host: bool = False) -> Dict[str, Any]:
        """Add a socket to a room. Hosts receive a token that authorises poll creation."""
        if not stream_id:
            raise ValidationError("Invalid stream data", {"streamId": "Required"})
        current = self._sessions.get(sid)
        if current and current["stream_id"] != stream_id:
            self.leave(sid)

        with self._lock:
            self._rooms.setdefault(stream_id, set()).add(sid)
            host_token = None
            if is_host:
                host_token = f"host_{stream_id}_{int(time.time() * 1000)}_{secrets.token_hex(8)}"
                self._host_tokens.setdefault(stream_id, set()).add(host_token)
            self._sessions[sid] = {
                "stream_id": stream_id,
                "user_name": user_name,
                "is_host": bool(is_host),
                "host_token": host_token,
            }
            count = len(self._rooms[stream_id])
            history = list(self._history.get(stream_id, []))
            polls = self._active_polls_locked(stream_id)

        logger.debug(f"{sid} joined {stream_id} ({count} viewers)")
        return {
            "streamId": stream_id,
            "count": count,
            "userName": user_name,
            "isHost": bool(is_host),
            "hostToken": host_token,
            "history": history,
            "activePolls": polls,
        }

    def leave(self, sid: str) -> Optional[Dict[str, Any]]:
        """
        Remove a socket from its room.

        Returns:
            {"streamId", "count"} or None if the socket was in no room
        """
        ended = []
        with self._lock:
            session = self._sessions.pop(sid, None)
            if not session:
                return None
            stream_id = session["stream_id"]
            room = self._rooms.get(stream_id, set())
            room.discard(sid)
            count = len(room)
            if count == 0:
                self._rooms.pop(stream_id, None)
                self._history.pop(stream_id, None)
                self._host_tokens.pop(stream_id, None)
                for key in [k for k in self._polls if k[0] == stream_id]:
                    ended.append(self._end_locked(key))
                    self._polls.pop(key, None)
                    self._votes.pop(key, None)

        for poll in ended:
            if poll:
                self._notify_ended(poll)
        return {"streamId": stream_id, "count": count}

    def viewer_count(self, stream_id: str) -> int:
        with self._lock:
            return len(self._rooms.get(stream_id, ()))

    def session(self, sid: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            session = self._sessions.get(sid)
            return dict(session) if session else None

    # --- Chat ---

    def add_chat_message(self, sid: str, stream_id: str, message: str, user_name: Optional[str] = None) -> Dict[str, Any]:
        message = (message or "").strip() if isinstance(message, str) else ""
        if not stream_id or not message:
            raise ValidationError("Invalid chat message data")
        if len(message) > MAX_COMMENT_LENGTH:
            raise ValidationError("Message too long", {"message": f"Max {MAX_COMMENT_LENGTH} characters"})

        chat_message = {
            "id": secrets.token_hex(8),
            "senderId": sid,
            "userName": user_name or "Anonymous",
            "message": message,
            "timestamp": utc_now_iso(),
        }
        with self._lock:
            session = self._sessions.get(sid)
            if not session or session["stream_id"] != stream_id:
                raise PermissionDenied("Join the stream before chatting")
            history = self._history.setdefault(stream_id, deque(maxlen=self.history_limit))
            history.append(chat_message)
        return chat_message

    def chat_history(self, stream_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._history.get(stream_id, []))

    # --- Polls ---

    def is_host(self, sid: str, stream_id: str, host_token: Optional[str] = None) -> bool:
        with self._lock:
            tokens = self._host_tokens.get(stream_id, set())
            if host_token and host_token in tokens:
                return True
            session = self._sessions.get(sid)
            if not session or session["stream_id"] != stream_id:
                return False
            return session["is_host"] or (session["host_token"] in tokens if session["host_token"] else False)

    @staticmethod
    def _normalise_options(options: Any) -> List[Dict[str, Any]]:
        if not isinstance(options, list) or not options:
            raise ValidationError("Invalid poll data", {"options": "At least one option is required"})
        normalised = []
        for i, option in enumerate(options):
            if isinstance(option, dict) and option.get("id"):
                normalised.append(dict(option, id=str(option["id"])))
            elif isinstance(option, str) and option.strip():
                normalised.append({"id": str(i), "text": option.strip()})
            else:
                raise ValidationError("Invalid poll data", {"options": "Each option needs an id"})
        return normalised

    def create_poll(self, sid: str, stream_id: str, poll: Dict[str, Any], host_token: Optional[str] = None) -> Dict[str, Any]:
        """
        Start a poll. Only hosts may create polls.

        Raises:
            ValidationError: missing id, question, options or duration
            PermissionDenied: caller is not a host of the stream
        """
        if not stream_id or not isinstance(poll, dict):
            raise ValidationError("Invalid poll data")
        try:
            duration = float(poll.get("duration") or 0)
        except (TypeError, ValueError):
            duration = 0
        if not poll.get("id") or not poll.get("question") or duration <= 0:
            raise ValidationError("Invalid poll data")
        options = self._normalise_options(poll.get("options"))

        if not self.is_host(sid, stream_id, host_token):
            logger.warning(f"Non-host {sid} tried to create a poll in {stream_id}")
            raise PermissionDenied("Only hosts can create polls")

        poll_id = str(poll["id"])
        key = (stream_id, poll_id)
        poll_data = dict(poll)
        poll_data.update({
            "id": poll_id,
            "options": options,
            "duration": duration,
            "streamId": stream_id,
            "createdAt": int(time.time() * 1000),
            "createdBy": sid,
            "results": {o["id"]: 0 for o in options},
            "totalVotes": 0,
            "isEnded": False,
        })

        timer = threading.Timer(duration, self._expire, args=(key,))
        timer.daemon = True
        with self._lock:
            if key in self._polls and not self._polls[key]["isEnded"]:
                raise ValidationError("Poll already exists", {"id": poll_id})
            self._polls[key] = poll_data
            self._votes[key] = {}
            self._timers[key] = timer
        timer.start()
        logger.info(f"Poll {poll_id} started in {stream_id} for {duration}s")
        return dict(poll_data)

    def vote(self, stream_id: str, poll_id: str, option_id: str, user_id: str) -> Dict[str, Any]:
        """One vote per user per poll. Returns the updated tally."""
        if not stream_id or not poll_id or not option_id or not user_id:
            raise ValidationError("Invalid vote data")
        with self._lock:
            key = (stream_id, str(poll_id))
            poll = self._polls.get(key)
            if poll is None:
                raise NotFoundError("Poll not found")
            if poll["isEnded"]:
                raise ValidationError("Poll has ended")
            option_id = str(option_id)
            if option_id not in poll["results"]:
                raise NotFoundError("Option not found")
            votes = self._votes[key]
            if user_id in votes:
                raise ValidationError("You already voted in this poll")
            votes[user_id] = option_id
            poll["results"][option_id] += 1
            poll["totalVotes"] += 1
            return {"pollId": poll["id"], "results": dict(poll["results"]), "totalVotes": poll["totalVotes"]}

    def end_poll(self, stream_id: str, poll_id: str, sid: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """
        End a poll early. With `sid` the caller must host the stream.
        Returns the final poll, or None if it was unknown or already ended.
        """
        with self._lock:
            key = (stream_id, str(poll_id))
            if key not in self._polls:
                return None
            if sid is not None and not self.is_host(sid, stream_id):
                raise PermissionDenied("Only hosts can end polls")
            ended = self._end_locked(key)
        if ended:
            self._notify_ended(ended)
        return ended

    def _expire(self, key: PollKey):
        with self._lock:
            ended = self._end_locked(key)
        if ended:
            logger.info(f"Poll {key[1]} in {key[0]} ended on timer")
            self._notify_ended(ended)

    def _end_locked(self, key: PollKey) -> Optional[Dict[str, Any]]:
        poll = self._polls.get(key)
        timer = self._timers.pop(key, None)
        if timer:
            timer.cancel()
        if poll is None or poll["isEnded"]:
            return None
        poll["isEnded"] = True
        poll["endedAt"] = int(time.time() * 1000)
        return dict(poll)

    def _notify_ended(self, poll: Dict[str, Any]):
        if not self.on_poll_ended:
            return
        try:
            self.on_poll_ended(poll["streamId"], poll)
        except Exception as e:
            logger.warning(f"Poll end listener failed: {e}")

    def _active_polls_locked(self, stream_id: str) -> List[Dict[str, Any]]:
        return [dict(p) for (room, _), p in self._polls.items() if room == stream_id and not p["isEnded"]]

    def active_polls(self, stream_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            return self._active_polls_locked(stream_id)

    def get_poll(self, stream_id: str, poll_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            poll = self._polls.get((stream_id, str(poll_id)))
            return dict(poll) if poll else None

    def shutdown(self):
        """Cancel pending poll timers."""
        with self._lock:
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
