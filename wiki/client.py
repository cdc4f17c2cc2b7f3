"""Async client for the reading wiki API."""

from __future__ import annotations

import logging
from typing import Any, Iterable

import httpx

from .models import ChapterSpoilerRecord, NarrativeEvent

logger = logging.getLogger(__name__)


class WikiError(Exception):
    """Raised when the wiki API returns an error."""

    def __init__(self, message: str, status_code: int = 0, hint: str = ""):
        self.status_code = status_code
        self.hint = hint
        super().__init__(message)


class NotFoundError(WikiError):
    """Raised when the wiki API answers 404."""

    def __init__(self, message: str, hint: str = ""):
        super().__init__(message, status_code=404, hint=hint)


class WikiClient:
    """Async wrapper for the wiki API.

    Also serves as the remote side of the progress store: ``fetch_progress``
    and ``push_progress`` read and write the viewer's server-side record.

    Usage::

        async with WikiClient("https://wiki.example/api", token="...") as wiki:
            events = await wiki.get_events(arc_id=3)
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._token = token
        self._allowed_host = httpx.URL(base_url).host
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> WikiClient:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    @property
    def is_authenticated(self) -> bool:
        return bool(self._token)

    # ── Request helpers ─────────────────────────────────────────

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Make an API request and return parsed data."""
        def _json_or_empty(resp: httpx.Response) -> Any:
            if not resp.content:
                return {}
            try:
                return resp.json()
            except ValueError:
                return {}

        # Credentials only ever go to the configured host
        url = self._client.build_request(method, path).url
        if url.host != self._allowed_host:
            raise WikiError(f"Refusing to send credentials to {url.host}")

        resp = await self._client.request(method, path, **kwargs)
        body = _json_or_empty(resp)
        detail = body if isinstance(body, dict) else {}

        if resp.status_code == 404:
            raise NotFoundError(
                _message_of(detail, f"Not found: {path}"),
                hint=_message_of(detail, "", key="hint"),
            )

        if resp.status_code >= 400:
            raise WikiError(
                _message_of(detail, f"HTTP {resp.status_code}"),
                status_code=resp.status_code,
                hint=_message_of(detail, "", key="hint"),
            )

        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    async def _get(self, path: str, **params: Any) -> Any:
        params = {k: v for k, v in params.items() if v is not None}
        return await self._request("GET", path, params=params)

    async def _post(self, path: str, **json_body: Any) -> Any:
        json_body = {k: v for k, v in json_body.items() if v is not None}
        return await self._request("POST", path, json=json_body)

    async def _put(self, path: str, **json_body: Any) -> Any:
        json_body = {k: v for k, v in json_body.items() if v is not None}
        return await self._request("PUT", path, json=json_body)

    # ── Viewer progress ─────────────────────────────────────────

    async def fetch_progress(self) -> int | None:
        """Return the viewer's stored chapter, or None when no record exists."""
        try:
            data = await self._get("/users/profile/progress")
        except NotFoundError:
            return None
        if not isinstance(data, dict):
            return None
        value = data.get("userProgress", data.get("chapterOrdinal"))
        if value is None or isinstance(value, bool):
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.debug("Ignoring malformed remote progress %r", value)
            return None

    async def push_progress(self, chapter: int) -> None:
        await self._put("/users/profile/progress", userProgress=chapter)
        logger.debug("Pushed progress: chapter %d", chapter)

    # ── Events ──────────────────────────────────────────────────

    async def get_events(
        self,
        arc_id: int | str | None = None,
        character_id: int | str | None = None,
    ) -> list[NarrativeEvent]:
        data = await self._get("/events", arcId=arc_id, characterId=character_id)
        items = data if isinstance(data, list) else data.get("events", [])
        return [NarrativeEvent.from_api(e) for e in items]

    # ── Chapter spoilers ────────────────────────────────────────

    async def get_spoiler_records(
        self,
        level: str | None = None,
        category: str | None = None,
        chapter_number: int | None = None,
        is_verified: bool | None = None,
    ) -> list[ChapterSpoilerRecord]:
        data = await self._get(
            "/chapter-spoilers",
            level=level,
            category=category,
            chapterNumber=chapter_number,
            isVerified=None if is_verified is None else str(is_verified).lower(),
        )
        items = data if isinstance(data, list) else data.get("spoilers", [])
        return [ChapterSpoilerRecord.from_api(s) for s in items]

    async def check_viewable(
        self,
        spoiler_id: int | str,
        read_chapter_ids: Iterable[int] | None = None,
        user_chapter_number: int | None = None,
    ) -> bool:
        """Ask the server whether a spoiler is viewable.

        Exactly one of ``read_chapter_ids`` or ``user_chapter_number`` is sent.
        """
        if (read_chapter_ids is None) == (user_chapter_number is None):
            raise ValueError("Pass exactly one of read_chapter_ids or user_chapter_number")
        data = await self._post(
            "/chapter-spoilers/check-viewable",
            spoilerId=spoiler_id,
            readChapterIds=sorted(read_chapter_ids) if read_chapter_ids is not None else None,
            userChapterNumber=user_chapter_number,
        )
        return bool(data.get("viewable", False)) if isinstance(data, dict) else False


def _message_of(detail: dict, default: str, key: str = "message") -> str:
    value = detail.get(key, detail.get("error", default) if key == "message" else default)
    if isinstance(value, list):
        return "; ".join(str(v) for v in value)
    return str(value) if value else default
