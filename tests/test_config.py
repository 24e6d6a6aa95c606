import json

import pytest
from cryptography.fernet import Fernet

from shared.auth import hash_token, parse_bearer, register_user, require_user, resolve_user
from shared.config import ENV_OVERRIDES, AppConfig, load_config, save_config
from shared.crypto import CredentialManager, mask_secret
from shared.errors import AuthenticationRequired, ValidationError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for env_key in ENV_OVERRIDES.values():
        monkeypatch.delenv(env_key, raising=False)


# --- Credentials ---

def test_encrypt_round_trip_with_explicit_key():
    key = Fernet.generate_key()
    token = CredentialManager.encrypt("mux-secret", key=key)
    assert token != "mux-secret"
    assert CredentialManager.decrypt(token, key=key) == "mux-secret"
    assert CredentialManager.decrypt(token, key=Fernet.generate_key()) is None
    assert CredentialManager.decrypt("garbage", key=key) is None


def test_derive_key_is_deterministic():
    assert CredentialManager.derive_key("pw") == CredentialManager.derive_key("pw")
    assert CredentialManager.derive_key("pw") != CredentialManager.derive_key("other")


@pytest.mark.parametrize("value,masked", [
    (None, ""), ("", ""), ("short", "****"), ("abcdefghijkl", "abcd...ijkl****"),
])
def test_mask_secret(value, masked):
    assert mask_secret(value) == masked


# --- AppConfig ---

def test_secrets_encrypted_on_disk(tmp_path):
    path = tmp_path / "config.json"
    config = AppConfig(mux_token_id="id", mux_token_secret="very-secret-value", serpapi_key="serp-key-1234")
    save_config(config, path)

    raw = json.loads(path.read_text())
    assert raw["is_encrypted"] is True
    assert raw["mux_token_id"] == "id"
    assert raw["mux_token_secret"] != "very-secret-value"

    loaded = load_config(path)
    assert loaded.mux_token_secret == "very-secret-value"
    assert loaded.serpapi_key == "serp-key-1234"
    assert loaded.is_encrypted is False
    assert loaded.mux_configured


def test_undecryptable_secret_is_dropped():
    config = AppConfig.from_dict({"is_encrypted": True, "mux_token_secret": "not-a-fernet-token"})
    assert config.mux_token_secret == ""


def test_public_dict_masks_secrets():
    public = AppConfig(mux_token_secret="abcdefghijkl", mux_webhook_secret="tiny").to_public_dict()
    assert public["mux_token_secret"] == "abcd...ijkl****"
    assert public["mux_webhook_secret"] == "****"
    assert "is_encrypted" not in public


def test_merge_skips_masked_and_unknown_values():
    config = AppConfig(mux_token_secret="real-secret", port=5005)
    merged = config.merge({"mux_token_secret": "real...cret****", "port": "6000", "bogus": 1, "serpapi_key": None})
    assert merged.mux_token_secret == "real-secret"
    assert merged.port == 6000
    assert config.port == 5005


def test_load_config_defaults_and_env_overrides(tmp_path, monkeypatch):
    path = tmp_path / "missing.json"
    assert load_config(path).database_path is None

    monkeypatch.setenv("BB_DATABASE_PATH", str(tmp_path / "env.db"))
    monkeypatch.setenv("BB_PORT", "7001")
    monkeypatch.setenv("MUX_WEBHOOK_SIGNING_SECRET", "whsec")
    config = load_config(path)
    assert config.resolved_database_path == tmp_path / "env.db"
    assert config.port == 7001
    assert config.mux_webhook_secret == "whsec"


def test_load_config_ignores_corrupt_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{oops")
    assert load_config(path) == AppConfig()


def test_unknown_keys_in_file_ignored():
    assert AppConfig.from_dict({"port": 8080, "legacy_option": True}).port == 8080


# --- Auth ---

def test_register_and_resolve(db):
    user, token = register_user(db, " Ann ", "ANN@Example.com")
    assert user.email == "ann@example.com"
    assert user.token_hash == hash_token(token)
    assert token not in json.dumps(user.to_dict(), default=str)
    assert resolve_user(db, f"Bearer {token}").id == user.id
    assert require_user(db, f"bearer {token}").id == user.id


def test_register_validation(db, user):
    with pytest.raises(ValidationError) as exc:
        register_user(db, "", "not-an-email")
    assert set(exc.value.details) == {"name", "email"}
    with pytest.raises(ValidationError) as exc:
        register_user(db, "Dupe", user.email)
    assert exc.value.details["email"] == "Email is already registered"


@pytest.mark.parametrize("header", [None, "", "Bearer", "Bearer   ", "Basic abc", "Token xyz"])
def test_parse_bearer_rejects(header):
    assert parse_bearer(header) is None


def test_require_user_with_bad_token(db):
    assert resolve_user(db, "Bearer wrong") is None
    with pytest.raises(AuthenticationRequired):
        require_user(db, "Bearer wrong")
