"""
Minimal Mux Video REST client.
Only the calls the app needs: direct uploads, asset lookup, playback ids
and asset deletion.
"""

import logging
from typing import Any, Dict, Optional

import requests

from shared.constants import MUX_API_BASE, DEFAULT_NETWORK_TIMEOUT
from shared.errors import MuxError

logger = logging.getLogger(__name__)


class MuxClient:
    def __init__(self, token_id: str, token_secret: str, base_url: str = MUX_API_BASE):
        self.token_id = token_id or ""
        self.token_secret = token_secret or ""
        self.base_url = base_url.rstrip("/")
        self._session = requests.Session()
        adapter = requests.adapters.HTTPAdapter(pool_connections=10, pool_maxsize=10, max_retries=2)
        self._session.mount("https://", adapter)
        self._session.mount("http://", adapter)
        self._session.auth = (self.token_id, self.token_secret)

    @property
    def is_configured(self) -> bool:
        return bool(self.token_id and self.token_secret)

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        if not self.is_configured:
            raise MuxError("Mux credentials are not configured")
        url = f"{self.base_url}{path}"
        try:
            response = self._session.request(method, url, json=payload, timeout=DEFAULT_NETWORK_TIMEOUT)
        except requests.RequestException as e:
            raise MuxError(f"Mux request failed: {e}") from e

        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            logger.warning(f"Mux {method} {path} -> {response.status_code}: {response.text[:200]}")
            raise MuxError(f"Mux API error {response.status_code}", status=response.status_code)
        if response.status_code == 204 or not response.content:
            return {}
        return response.json().get("data", {})

    def create_upload(self, cors_origin: str = "*", passthrough: Optional[str] = None) -> Dict[str, Any]:
        """Create a direct upload. Returns the upload object (id, url, status)."""
        settings: Dict[str, Any] = {"playback_policy": ["public"]}
        if passthrough:
            settings["passthrough"] = passthrough
        data = self._request("POST", "/video/v1/uploads", {
            "cors_origin": cors_origin,
            "new_asset_settings": settings,
        })
        if not data or not data.get("id"):
            raise MuxError("Mux did not return an upload")
        return data

    def retrieve_asset(self, asset_id: str) -> Optional[Dict[str, Any]]:
        """Asset object, or None if Mux does not know it."""
        return self._request("GET", f"/video/v1/assets/{asset_id}")

    def create_playback_id(self, asset_id: str, policy: str = "public") -> Dict[str, Any]:
        data = self._request("POST", f"/video/v1/assets/{asset_id}/playback-ids", {"policy": policy})
        if not data or not data.get("id"):
            raise MuxError(f"Could not create playback id for asset {asset_id}")
        return data

    def delete_asset(self, asset_id: str) -> bool:
        """Returns False when the asset was already gone."""
        return self._request("DELETE", f"/video/v1/assets/{asset_id}") is not None
