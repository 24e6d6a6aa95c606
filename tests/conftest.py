import itertools

import pytest

from shared.auth import register_user
from shared.database import DatabaseManager


class FakeMux:
    """In-memory stand-in for MuxClient."""

    def __init__(self, assets=None, configured=True):
        self.assets = dict(assets or {})
        self.configured = configured
        self.uploads = []
        self.deleted = []
        self.created_playback_ids = []
        self._ids = itertools.count(1)

    @property
    def is_configured(self):
        return self.configured

    def create_upload(self, cors_origin="*", passthrough=None):
        upload_id = f"upload-{next(self._ids)}"
        self.uploads.append({"id": upload_id, "cors_origin": cors_origin, "passthrough": passthrough})
        return {"id": upload_id, "url": f"https://storage.example.com/{upload_id}", "status": "waiting"}

    def retrieve_asset(self, asset_id):
        return self.assets.get(asset_id)

    def create_playback_id(self, asset_id, policy="public"):
        playback_id = f"pb-created-{asset_id}"
        self.created_playback_ids.append(asset_id)
        return {"id": playback_id, "policy": policy}

    def delete_asset(self, asset_id):
        self.deleted.append(asset_id)
        return self.assets.pop(asset_id, None) is not None


@pytest.fixture
def db(tmp_path):
    return DatabaseManager(str(tmp_path / "collection.db"))


@pytest.fixture
def user(db):
    created, _token = register_user(db, "Pappy Fan", "pappy@example.com")
    return created


@pytest.fixture
def other_user(db):
    created, _token = register_user(db, "Rye Guy", "rye@example.com")
    return created


@pytest.fixture
def fake_mux():
    return FakeMux()
