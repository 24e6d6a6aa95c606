import sqlite3

import pytest

from shared.database import DatabaseManager, _fts_query
from shared.models import (
    Comment, SecurityEvent, Spirit, Stream, StreamTip, Video, VideoStatus, generate_id,
)


def _spirit(owner_id, name="Weller 12", brand="Buffalo Trace", **kwargs):
    return Spirit(id=generate_id(), owner_id=owner_id, name=name, brand=brand, **kwargs)


def _video(**kwargs):
    kwargs.setdefault("id", generate_id())
    kwargs.setdefault("title", "Tasting")
    return Video(**kwargs)


def test_schema_is_idempotent(tmp_path):
    path = tmp_path / "nested" / "bb.db"
    DatabaseManager(str(path))
    db = DatabaseManager(str(path))
    with db._connection() as conn:
        tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    assert {"users", "spirits", "videos", "comments", "security_events", "streams",
            "stream_likes", "stream_reports", "stream_tips"} <= tables


def test_migration_adds_missing_columns(tmp_path):
    path = tmp_path / "old.db"
    conn = sqlite3.connect(path)
    conn.execute("""
        CREATE TABLE videos (
            id TEXT PRIMARY KEY, title TEXT NOT NULL, description TEXT,
            status TEXT NOT NULL DEFAULT 'uploading', mux_upload_id TEXT UNIQUE,
            mux_asset_id TEXT UNIQUE, mux_playback_id TEXT, duration REAL,
            aspect_ratio TEXT, user_id TEXT, publicly_listed BOOLEAN DEFAULT 1,
            views INTEGER DEFAULT 0, created_at TEXT NOT NULL, updated_at TEXT NOT NULL
        )
    """)
    conn.commit()
    conn.close()

    db = DatabaseManager(str(path))
    with db._connection() as c:
        columns = [row[1] for row in c.execute("PRAGMA table_info(videos)")]
    assert "thumbnail_time" in columns


def test_spirit_round_trip_keeps_note_lists(db, user):
    spirit = _spirit(user.id, nose=["vanilla", "cherry"], rating=88)
    db.insert_spirit(spirit)
    loaded = db.get_spirit(spirit.id, user.id)
    assert loaded.nose == ["vanilla", "cherry"]
    assert loaded.rating == 88
    assert db.get_spirit(spirit.id, "someone-else") is None


def test_update_spirit_is_owner_scoped(db, user, other_user):
    spirit = db.insert_spirit(_spirit(user.id))
    assert db.update_spirit(spirit.id, other_user.id, {"rating": 90}) is None
    updated = db.update_spirit(spirit.id, user.id, {"rating": 90, "owner_id": other_user.id})
    assert updated.rating == 90
    assert updated.owner_id == user.id
    assert updated.updated_at >= spirit.updated_at


def test_soft_delete_hides_spirit(db, user):
    spirit = db.insert_spirit(_spirit(user.id))
    assert db.soft_delete_spirit(spirit.id, user.id)
    assert db.get_spirit(spirit.id) is None
    assert db.list_spirits(user.id) == []
    assert not db.soft_delete_spirit(spirit.id, user.id)


def test_list_spirits_filters(db, user, other_user):
    db.insert_spirit(_spirit(user.id, name="Weller 12", type="Bourbon", is_favorite=True))
    db.insert_spirit(_spirit(user.id, name="Rittenhouse", brand="Heaven Hill", type="Rye"))
    db.insert_spirit(_spirit(user.id, name="Plantation 3 Star", brand="Plantation", category="rum", type="White"))
    db.insert_spirit(_spirit(other_user.id, name="Other Weller"))

    assert len(db.list_spirits(user.id)) == 3
    assert [s.name for s in db.list_spirits(user.id, category="rum")] == ["Plantation 3 Star"]
    assert [s.name for s in db.list_spirits(user.id, spirit_type="rye")] == ["Rittenhouse"]
    assert [s.name for s in db.list_spirits(user.id, favorites_only=True)] == ["Weller 12"]
    assert [s.name for s in db.list_spirits(user.id, query="weller")] == ["Weller 12"]
    assert [s.name for s in db.list_spirits(user.id, sort="name")] == ["Plantation 3 Star", "Rittenhouse", "Weller 12"]


def test_search_matches_word_prefixes(db, user):
    db.insert_spirit(_spirit(user.id, name="Stagg Jr", brand="Buffalo Trace", notes="cherry bomb"))
    db.insert_spirit(_spirit(user.id, name="Old Forester 1920", brand="Brown-Forman"))
    assert [s.name for s in db.search_spirits(user.id, "stag")] == ["Stagg Jr"]
    assert [s.name for s in db.search_spirits(user.id, "forest")] == ["Old Forester 1920"]
    assert db.search_spirits(user.id, "macallan") == []


def test_search_reflects_updates(db, user):
    spirit = db.insert_spirit(_spirit(user.id, name="Mystery Bottle"))
    db.update_spirit(spirit.id, user.id, {"name": "Elmer T Lee"})
    assert [s.name for s in db.search_spirits(user.id, "elmer")] == ["Elmer T Lee"]
    assert db.search_spirits(user.id, "mystery") == []


def test_fts_query_quotes_words():
    assert _fts_query('old "fitz') == '"old"* "fitz"*'


def test_featured_orders_favourites_then_rating(db, user, other_user):
    db.insert_spirit(_spirit(user.id, name="Good", rating=80))
    db.insert_spirit(_spirit(other_user.id, name="Great", rating=95))
    db.insert_spirit(_spirit(user.id, name="Loved", rating=70, is_favorite=True))
    assert [s.name for s in db.featured_spirits(limit=2)] == ["Loved", "Great"]


def test_spirit_stats(db, user):
    db.insert_spirit(_spirit(user.id, rating=80, price=40.0, is_favorite=True))
    db.insert_spirit(_spirit(user.id, rating=90, price=60.5, category="rum"))
    db.insert_spirit(_spirit(user.id))
    stats = db.spirit_stats(user.id)
    assert stats["total_spirits"] == 3
    assert stats["favorites"] == 1
    assert stats["categories"] == 2
    assert stats["average_rating"] == 85.0
    assert stats["total_value"] == 100.5
    assert stats["tastings"] == 0


def test_video_lookup_update_and_views(db):
    video = db.insert_video(_video(mux_upload_id="up-1"))
    assert db.get_video_by_upload_id("up-1").id == video.id
    updated = db.update_video(video.id, {"mux_asset_id": "asset-1", "status": "processing", "bogus": 1})
    assert updated.status == "processing"
    assert db.get_video_by_asset_id("asset-1").id == video.id
    assert db.update_video("missing", {"status": "ready"}) is None

    assert db.increment_views(video.id) == 1
    assert db.increment_views(video.id) == 2
    assert db.increment_views("missing") is None


def test_public_listing_only_ready_and_listed(db):
    db.insert_video(_video(title="ready", status="ready", mux_playback_id="pb"))
    db.insert_video(_video(title="hidden", status="ready", publicly_listed=False))
    db.insert_video(_video(title="processing", status="processing"))
    assert [v.title for v in db.list_public_videos()] == ["ready"]


def test_reconciliation_candidates(db):
    old = "2020-01-01T00:00:00+00:00"
    stuck = db.insert_video(_video(title="stuck", status="processing", updated_at=old))
    db.insert_video(_video(title="fresh", status="processing"))
    placeholder = db.insert_video(_video(title="ph", status="ready", mux_playback_id="placeholder-123"))
    no_pb = db.insert_video(_video(title="nopb", status="ready"))
    db.insert_video(_video(title="fine", status="ready", mux_playback_id="real"))
    db.insert_video(_video(title="old-error", status="error", updated_at=old))

    cutoff = "2024-01-01T00:00:00+00:00"
    ids = {v.id for v in db.reconciliation_candidates(cutoff, 20)}
    assert ids == {stuck.id, placeholder.id, no_pb.id}
    assert len(db.reconciliation_candidates(cutoff, 1)) == 1


def test_comments_join_author_and_cascade(db, user):
    video = db.insert_video(_video())
    first = db.insert_comment(Comment(id=generate_id(), content="nice", video_id=video.id, user_id=user.id,
                                      created_at="2024-01-01T00:00:00+00:00"))
    db.insert_comment(Comment(id=generate_id(), content="later", video_id=video.id, user_id=user.id,
                              created_at="2024-01-02T00:00:00+00:00"))
    assert first.user_name == "Pappy Fan"
    assert [c.content for c in db.list_comments(video.id)] == ["later", "nice"]

    db.delete_video(video.id)
    assert db.list_comments(video.id) == []


def test_security_event_queries(db):
    for i, (etype, severity, ip) in enumerate([
        ("csrf_validation_failure", "medium", "1.1.1.1"),
        ("csrf_validation_failure", "medium", "2.2.2.2"),
        ("auth_failure", "low", "1.1.1.1"),
    ]):
        db.insert_security_event(SecurityEvent(
            id=generate_id(), type=etype, severity=severity, ip=ip,
            timestamp=f"2024-01-0{i + 1}T00:00:00+00:00", metadata={"n": i},
        ))

    assert db.count_security_events("csrf_validation_failure", "1.1.1.1", "2023-12-31") == 1
    events = db.query_security_events()
    assert [e.metadata["n"] for e in events] == [2, 1, 0]
    assert len(db.query_security_events(types=["auth_failure"])) == 1
    assert len(db.query_security_events(severities=["medium"], ip="2.2.2.2")) == 1
    assert len(db.query_security_events(start_iso="2024-01-02", end_iso="2024-01-02T23:59:59")) == 1
    assert db.clear_security_events() == 3


def test_stream_likes_toggle_and_tips(db, user, other_user):
    stream = db.insert_stream(Stream(id=generate_id(), title="Live", host_id=user.id))
    assert db.toggle_stream_like(stream.id, other_user.id) is True
    assert db.count_stream_likes(stream.id) == 1
    assert db.has_liked_stream(stream.id, other_user.id)
    assert db.toggle_stream_like(stream.id, other_user.id) is False
    assert db.count_stream_likes(stream.id) == 0

    db.insert_stream_tip(StreamTip(id=generate_id(), stream_id=stream.id, sender_id=other_user.id,
                                   host_id=user.id, amount=5.5))
    assert db.stream_tip_total(stream.id) == 5.5
    assert [s.id for s in db.list_live_streams()] == [stream.id]
    db.set_stream_live(stream.id, False)
    assert db.list_live_streams() == []


def test_views_are_atomic_under_threads(db):
    from concurrent.futures import ThreadPoolExecutor

    video = db.insert_video(_video())
    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda _: db.increment_views(video.id), range(40)))
    assert db.get_video(video.id).views == 40


def test_video_status_values():
    assert VideoStatus("ready") is VideoStatus.READY
    with pytest.raises(ValueError):
        VideoStatus("bogus")
