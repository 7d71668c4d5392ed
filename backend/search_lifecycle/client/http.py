"""Typesense HTTP client built on requests."""

from __future__ import annotations

from typing import Any, Mapping
from urllib.parse import quote

import requests

from search_lifecycle.core.config import Settings
from search_lifecycle.core.errors import (
    ApiError,
    PayloadTooLargeError,
    SearchConnectionError,
    SearchTimeoutError,
)
from search_lifecycle.core.logging import get_logger

logger = get_logger(__name__)

API_KEY_HEADER = "X-TYPESENSE-API-KEY"
BODY_PREVIEW = 500


class TypesenseClient:
    """Collections, aliases and documents endpoints of a Typesense server."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout_ms: int = 5_000,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_ms = timeout_ms
        self.session = session or requests.Session()
        self.session.headers.update({API_KEY_HEADER: api_key})

    @classmethod
    def from_settings(cls, settings: Settings) -> "TypesenseClient":
        return cls(settings.base_url, settings.api_key, timeout_ms=settings.timeout_ms)

    # Collections -------------------------------------------------------

    def create_collection(self, schema: Mapping[str, Any]) -> dict[str, Any]:
        return self._request("POST", "/collections", json=dict(schema)).json()

    def delete_collection(self, name: str) -> bool:
        resp = self._request("DELETE", f"/collections/{_seg(name)}", allow_404=True)
        return resp.status_code != 404

    def list_collections(self) -> list[dict[str, Any]]:
        return list(self._request("GET", "/collections").json())

    def retrieve_schema(self, name: str) -> dict[str, Any] | None:
        resp = self._request("GET", f"/collections/{_seg(name)}", allow_404=True)
        if resp.status_code == 404:
            return None
        return resp.json()

    # Aliases -----------------------------------------------------------

    def resolve_alias(self, logical: str) -> str | None:
        resp = self._request("GET", f"/aliases/{_seg(logical)}", allow_404=True)
        if resp.status_code == 404:
            return None
        target = resp.json().get("collection_name")
        return str(target) if target else None

    def upsert_alias(self, logical: str, physical: str) -> None:
        self._request("PUT", f"/aliases/{_seg(logical)}", json={"collection_name": physical})

    def delete_alias(self, logical: str) -> bool:
        resp = self._request("DELETE", f"/aliases/{_seg(logical)}", allow_404=True)
        return resp.status_code != 404

    # Documents ---------------------------------------------------------

    def import_documents(self, name: str, payload: bytes, action: str) -> str:
        resp = self._request(
            "POST",
            f"/collections/{_seg(name)}/documents/import",
            params={"action": action},
            data=payload,
            headers={"Content-Type": "text/plain"},
        )
        return resp.text

    def delete_by_filter(self, name: str, filter_by: str, timeout_ms: int | None = None) -> int:
        resp = self._request(
            "DELETE",
            f"/collections/{_seg(name)}/documents",
            params={"filter_by": filter_by},
            allow_404=True,
            timeout_ms=timeout_ms,
        )
        if resp.status_code == 404:
            return 0
        body = resp.json()
        return max(int(body.get("num_deleted") or 0), 0)

    # Internal helpers -------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        allow_404: bool = False,
        timeout_ms: int | None = None,
        **kwargs: Any,
    ) -> requests.Response:
        url = f"{self.base_url}{path}"
        timeout = (timeout_ms or self.timeout_ms) / 1000.0
        try:
            resp = self.session.request(method, url, timeout=timeout, **kwargs)
        except requests.exceptions.Timeout as exc:
            raise SearchTimeoutError(f"{method} {path} timed out after {timeout:.1f}s") from exc
        except requests.exceptions.ConnectionError as exc:
            raise SearchConnectionError(f"{method} {path} failed: {exc}") from exc
        if resp.status_code == 404 and allow_404:
            return resp
        if resp.status_code >= 400:
            body = resp.text[:BODY_PREVIEW]
            logger.debug("Search service error %s on %s %s: %s", resp.status_code, method, path, body)
            if resp.status_code == 413:
                raise PayloadTooLargeError(f"{method} {path} payload too large", body=body)
            raise ApiError(f"{method} {path} returned {resp.status_code}", status=resp.status_code, body=body)
        return resp


def _seg(name: str) -> str:
    return quote(str(name), safe="")


__all__ = ["TypesenseClient"]
