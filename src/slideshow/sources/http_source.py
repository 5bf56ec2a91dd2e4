"""Gallery REST API media source."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence
from urllib.parse import quote

import httpx

from ..domain.models import FetchedMedia, NextItem, SelectionConfig
from ..exceptions import FetchError, handle_http_errors
from .base import MediaSource

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class HttpMediaSource(MediaSource):
    """Talk to the gallery server's ``/api/images`` and static media routes."""

    base_url: str
    timeout_seconds: float = 10.0
    client: httpx.AsyncClient | None = None
    log: logging.Logger = field(default_factory=lambda: logger)
    _last_next: tuple[int, NextItem] | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        if self.client is None:
            self.client = httpx.AsyncClient(
                base_url=self.base_url.rstrip("/"),
                timeout=self.timeout_seconds,
            )

    async def reset_session(self) -> None:
        self._last_next = None
        with handle_http_errors(action="reset session"):
            response = await self._http.post("/api/images/reset", json={})
            response.raise_for_status()
        self.log.info("source.http.reset")

    async def list(self, selection: SelectionConfig) -> Sequence[str]:
        with handle_http_errors(action="list images"):
            response = await self._http.post(
                "/api/images/list", json=selection.request_params()
            )
            response.raise_for_status()
        body = self._json(response, action="list images")
        if not isinstance(body, list):
            raise FetchError("list images returned a non-list payload")
        identifiers = [str(entry) for entry in body if entry]
        self.log.info("source.http.listed", extra={"count": len(identifiers)})
        return identifiers

    async def next(self, selection: SelectionConfig, *, sequence: int) -> NextItem:
        if self._last_next is not None and self._last_next[0] == sequence:
            return self._last_next[1]
        payload = {**selection.request_params(), "sequence": sequence}
        with handle_http_errors(action="advance pointer"):
            response = await self._http.post("/api/images/next", json=payload)
            response.raise_for_status()
        body = self._json(response, action="advance pointer")
        if not isinstance(body, dict):
            raise FetchError("advance pointer returned a non-object payload")
        item = NextItem.from_payload(body)
        self._last_next = (sequence, item)
        return item

    async def fetch(self, identifier: str) -> FetchedMedia:
        return await self._download(f"/images/{quote(identifier)}", identifier=identifier)

    async def fetch_track(self, track: str) -> FetchedMedia:
        return await self._download(f"/music/{quote(track)}", identifier=track)

    async def aclose(self) -> None:
        await self._http.aclose()

    @property
    def _http(self) -> httpx.AsyncClient:
        assert self.client is not None
        return self.client

    async def _download(self, path: str, *, identifier: str) -> FetchedMedia:
        with handle_http_errors(identifier=identifier, action=f"download {identifier}"):
            response = await self._http.get(path)
            response.raise_for_status()
        content_type = response.headers.get("Content-Type", "application/octet-stream")
        return FetchedMedia(payload=response.content, content_type=content_type)

    @staticmethod
    def _json(response: httpx.Response, *, action: str) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise FetchError(f"{action} returned invalid JSON") from exc


__all__ = ["HttpMediaSource"]
