import threading

import pytest

from live import StreamInteractions, StreamRoomRegistry
from shared.errors import NotFoundError, PermissionDenied, ValidationError


def _poll(poll_id="p1", duration=60, options=None):
    return {
        "id": poll_id,
        "question": "Best finish?",
        "options": options or [{"id": "a", "text": "Oak"}, {"id": "b", "text": "Spice"}],
        "duration": duration,
    }


@pytest.fixture
def ended():
    return []


@pytest.fixture
def rooms(ended):
    registry = StreamRoomRegistry(history_limit=3, on_poll_ended=lambda stream_id, poll: ended.append((stream_id, poll)))
    yield registry
    registry.shutdown()


# --- Rooms ---

def test_join_and_leave_counts(rooms):
    assert rooms.join("s1", "stream-1")["count"] == 1
    assert rooms.join("s2", "stream-1")["count"] == 2
    assert rooms.viewer_count("stream-1") == 2
    assert rooms.leave("s1") == {"streamId": "stream-1", "count": 1}
    assert rooms.leave("s1") is None


def test_switching_rooms_leaves_the_old_one(rooms):
    rooms.join("s1", "stream-1")
    rooms.join("s1", "stream-2")
    assert rooms.viewer_count("stream-1") == 0
    assert rooms.viewer_count("stream-2") == 1


def test_host_gets_token(rooms):
    joined = rooms.join("h", "stream-1", user_name="Host", is_host=True)
    assert joined["isHost"] is True
    assert joined["hostToken"].startswith("host_stream-1_")
    assert rooms.join("v", "stream-1")["hostToken"] is None


def test_chat_history_is_capped_and_replayed(rooms):
    rooms.join("s1", "stream-1")
    for i in range(5):
        rooms.add_chat_message("s1", "stream-1", f"msg {i}", "Ann")
    history = rooms.chat_history("stream-1")
    assert [m["message"] for m in history] == ["msg 2", "msg 3", "msg 4"]
    assert rooms.join("s2", "stream-1")["history"] == history


def test_chat_validation(rooms):
    rooms.join("s1", "stream-1")
    with pytest.raises(ValidationError):
        rooms.add_chat_message("s1", "stream-1", "   ")
    with pytest.raises(ValidationError):
        rooms.add_chat_message("s1", "stream-1", "x" * 1001)
    message = rooms.add_chat_message("s1", "stream-1", " cheers ")
    assert message["message"] == "cheers"
    assert message["userName"] == "Anonymous"


def test_chat_requires_membership(rooms):
    with pytest.raises(PermissionDenied):
        rooms.add_chat_message("ghost", "nobody-here", "spam")
    assert rooms.chat_history("nobody-here") == []

    rooms.join("s1", "stream-1")
    rooms.join("s2", "stream-2")
    with pytest.raises(PermissionDenied):
        rooms.add_chat_message("s2", "stream-1", "wrong room")
    assert rooms.chat_history("stream-1") == []


def test_empty_room_forgets_history(rooms):
    rooms.join("s1", "stream-1")
    rooms.add_chat_message("s1", "stream-1", "hello")
    rooms.leave("s1")
    assert rooms.chat_history("stream-1") == []


# --- Polls ---

def test_only_hosts_create_polls(rooms):
    rooms.join("viewer", "stream-1")
    with pytest.raises(PermissionDenied):
        rooms.create_poll("viewer", "stream-1", _poll())


def test_host_token_authorises_another_socket(rooms):
    token = rooms.join("host", "stream-1", is_host=True)["hostToken"]
    rooms.join("second-tab", "stream-1")
    poll = rooms.create_poll("second-tab", "stream-1", _poll(), host_token=token)
    assert poll["results"] == {"a": 0, "b": 0}


@pytest.mark.parametrize("bad", [
    {"question": "q", "options": ["x"], "duration": 10},
    {"id": "p", "options": ["x"], "duration": 10},
    {"id": "p", "question": "q", "options": [], "duration": 10},
    {"id": "p", "question": "q", "options": ["x"], "duration": 0},
    {"id": "p", "question": "q", "options": [{"text": "no id"}], "duration": 10},
])
def test_invalid_polls(rooms, bad):
    rooms.join("host", "stream-1", is_host=True)
    with pytest.raises(ValidationError):
        rooms.create_poll("host", "stream-1", bad)


def test_string_options_get_index_ids(rooms):
    rooms.join("host", "stream-1", is_host=True)
    poll = rooms.create_poll("host", "stream-1", _poll(options=["Yes", "No"]))
    assert [o["id"] for o in poll["options"]] == ["0", "1"]


def test_voting_rules(rooms):
    rooms.join("host", "stream-1", is_host=True)
    rooms.create_poll("host", "stream-1", _poll())

    tally = rooms.vote("stream-1", "p1", "a", "user-1")
    assert tally == {"pollId": "p1", "results": {"a": 1, "b": 0}, "totalVotes": 1}

    with pytest.raises(ValidationError):
        rooms.vote("stream-1", "p1", "b", "user-1")
    with pytest.raises(NotFoundError):
        rooms.vote("stream-1", "p1", "zzz", "user-2")
    with pytest.raises(NotFoundError):
        rooms.vote("stream-2", "p1", "a", "user-2")
    with pytest.raises(NotFoundError):
        rooms.vote("stream-1", "nope", "a", "user-2")


def test_host_ends_poll(rooms, ended):
    rooms.join("host", "stream-1", is_host=True)
    rooms.join("viewer", "stream-1")
    rooms.create_poll("host", "stream-1", _poll())

    with pytest.raises(PermissionDenied):
        rooms.end_poll("stream-1", "p1", sid="viewer")

    final = rooms.end_poll("stream-1", "p1", sid="host")
    assert final["isEnded"] is True
    assert ended[0][0] == "stream-1"
    assert rooms.end_poll("stream-1", "p1", sid="host") is None
    with pytest.raises(ValidationError):
        rooms.vote("stream-1", "p1", "a", "late-voter")
    assert rooms.active_polls("stream-1") == []


def test_poll_ids_are_scoped_to_their_stream(rooms):
    rooms.join("host-a", "stream-a", is_host=True)
    rooms.join("host-b", "stream-b", is_host=True)
    rooms.create_poll("host-a", "stream-a", _poll())
    rooms.end_poll("stream-a", "p1", sid="host-a")

    rooms.create_poll("host-b", "stream-b", _poll())
    rooms.vote("stream-b", "p1", "b", "user-1")

    assert rooms.get_poll("stream-a", "p1")["isEnded"] is True
    assert rooms.get_poll("stream-a", "p1")["totalVotes"] == 0
    assert rooms.get_poll("stream-b", "p1")["results"] == {"a": 0, "b": 1}
    with pytest.raises(PermissionDenied):
        rooms.end_poll("stream-b", "p1", sid="host-a")


def test_poll_expires_on_timer(ended):
    done = threading.Event()

    def on_end(stream_id, poll):
        ended.append(poll)
        done.set()

    registry = StreamRoomRegistry(on_poll_ended=on_end)
    registry.join("host", "stream-1", is_host=True)
    registry.create_poll("host", "stream-1", _poll(duration=0.05))
    assert done.wait(2)
    assert ended[0]["id"] == "p1"
    assert registry.get_poll("stream-1", "p1")["isEnded"] is True


def test_active_polls_replayed_on_join(rooms):
    rooms.join("host", "stream-1", is_host=True)
    rooms.create_poll("host", "stream-1", _poll())
    joined = rooms.join("late", "stream-1")
    assert [p["id"] for p in joined["activePolls"]] == ["p1"]


def test_last_viewer_leaving_ends_polls(rooms, ended):
    rooms.join("host", "stream-1", is_host=True)
    rooms.create_poll("host", "stream-1", _poll())
    rooms.leave("host")
    assert [p["id"] for _, p in ended] == ["p1"]
    assert rooms.get_poll("stream-1", "p1") is None


# --- Persistent interactions ---

@pytest.fixture
def interactions(db):
    return StreamInteractions(db)


@pytest.fixture
def stream(interactions, user):
    return interactions.create_stream(user.id, "Friday pour", spirit_id="s-1")


def test_create_stream_validation(interactions, user):
    with pytest.raises(ValidationError):
        interactions.create_stream(user.id, "   ")


def test_like_toggles(interactions, stream, other_user):
    assert interactions.like(stream.id, other_user.id) == {"liked": True, "likeCount": 1}
    assert interactions.like(stream.id, other_user.id) == {"liked": False, "likeCount": 0}
    with pytest.raises(NotFoundError):
        interactions.like("missing", other_user.id)


def test_report_rules(interactions, stream, user, other_user):
    with pytest.raises(ValidationError):
        interactions.report(stream.id, user.id, "spam")
    report = interactions.report(stream.id, other_user.id, "spam")
    assert report.status == "pending"
    with pytest.raises(ValidationError):
        interactions.report(stream.id, other_user.id, "again")
    with pytest.raises(ValidationError):
        interactions.report(stream.id, other_user.id, "  ")


@pytest.mark.parametrize("amount", [0, -5, "abc", None, True, "nan", "inf", float("-inf")])
def test_tip_amount_must_be_positive_number(interactions, stream, other_user, amount):
    with pytest.raises(ValidationError):
        interactions.tip(stream.id, other_user.id, amount)


def test_tip_rules(interactions, stream, user, other_user):
    with pytest.raises(ValidationError):
        interactions.tip(stream.id, user.id, 5)
    with pytest.raises(ValidationError):
        interactions.tip(stream.id, other_user.id, 5, message="x" * 501)
    tip = interactions.tip(stream.id, other_user.id, "2.50", message="Cheers")
    assert tip.amount == 2.5
    assert tip.host_id == user.id


def test_summary(interactions, stream, other_user):
    interactions.like(stream.id, other_user.id)
    interactions.tip(stream.id, other_user.id, 3)
    assert interactions.summary(stream.id) == {"likes": 1, "isLiked": False}
    assert interactions.summary(stream.id, other_user.id) == {"likes": 1, "isLiked": True, "tipTotal": 3.0}


def test_end_stream_host_only(interactions, stream, user, other_user):
    with pytest.raises(PermissionDenied):
        interactions.end_stream(stream.id, other_user.id)
    assert interactions.end_stream(stream.id, user.id).is_live is False
    assert interactions.list_live() == []
