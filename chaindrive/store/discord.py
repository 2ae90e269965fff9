"""
Discord Record Store

Uses a Discord text channel as the record store:
- container  -> channel id
- record     -> message
- attachment -> message attachment (max 10 per message)

Talks to the Discord REST API directly with httpx. Rate limits (HTTP
429) are retried after the delay Discord asks for; everything else is
reported as StoreError.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ..exceptions import RecordNotFoundError, StoreError
from .base import Attachment, NewAttachment, Record, RecordStore

logger = logging.getLogger(__name__)

DISCORD_API = "https://discord.com/api/v10"

# Discord limits
MAX_ATTACHMENTS = 10
MAX_CONTENT_LENGTH = 2000
MAX_PAGE_SIZE = 100


class DiscordStore(RecordStore):
    """Record store on top of the Discord REST API."""

    max_attachments = MAX_ATTACHMENTS

    def __init__(self, token: str, api_base: str = DISCORD_API,
                 timeout: float = 30.0, max_retries: int = 3,
                 version: str = "0", client: Optional[httpx.AsyncClient] = None):
        """
        Args:
            token: Bot token
            api_base: REST API root
            timeout: Per-request timeout in seconds
            max_retries: Retries on HTTP 429
            version: Client version sent in the User-Agent
            client: Pre-built httpx client (tests inject a MockTransport one)
        """
        self.api_base = api_base.rstrip("/")
        self.max_retries = max_retries
        self._auth = {"Authorization": f"Bot {token}"}
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": f"DiscordBot (chaindrive, {version})"},
        )
        logger.debug(f"Initialized DiscordStore [api_base={self.api_base}]")

    async def close(self):
        if self._owns_client:
            await self.client.aclose()

    async def _request(self, method: str, path: str, operation: str,
                       record_id: Optional[int] = None, **kwargs) -> httpx.Response:
        """
        Make an authenticated API request, retrying on rate limits.

        Raises:
            RecordNotFoundError: HTTP 404
            StoreError: any other failure
        """
        url = f"{self.api_base}{path}"
        headers = dict(self._auth)
        headers.update(kwargs.pop("headers", {}))

        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.request(method, url, headers=headers, **kwargs)
            except httpx.HTTPError as e:
                raise StoreError(f"{method} {path} failed: {type(e).__name__}: {e}",
                                 operation=operation, record_id=record_id) from e

            logger.debug(f"{method} {path} status={response.status_code}")

            if response.status_code == 429 and attempt < self.max_retries:
                delay = self._retry_after(response)
                logger.warning(
                    f"Rate limited (attempt {attempt + 1}/{self.max_retries + 1}): "
                    f"{method} {path}, retrying in {delay:.2f}s"
                )
                await asyncio.sleep(delay)
                continue

            if response.status_code == 404:
                raise RecordNotFoundError(f"{method} {path}: {self._error_detail(response)}",
                                          operation=operation, record_id=record_id,
                                          status=404)
            if response.status_code >= 400:
                raise StoreError(f"{method} {path}: {self._error_detail(response)}",
                                 operation=operation, record_id=record_id,
                                 status=response.status_code)
            return response

        raise StoreError(f"{method} {path}: rate limit retries exhausted",
                         operation=operation, record_id=record_id, status=429)

    @staticmethod
    def _retry_after(response: httpx.Response) -> float:
        try:
            return float(response.json().get("retry_after", 1.0))
        except (ValueError, AttributeError):
            return float(response.headers.get("Retry-After", 1.0))

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            data = response.json()
            return f"{data.get('message', 'Unknown error')} (code {data.get('code', '?')})"
        except ValueError:
            return response.text or f"HTTP {response.status_code}"

    def _fetcher(self, url: str, record_id: int):
        async def fetch() -> bytes:
            try:
                response = await self.client.get(url)
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise StoreError(f"Attachment download failed: {e}",
                                 operation="fetch_attachment", record_id=record_id) from e
            return response.content
        return fetch

    def _to_record(self, data: Dict[str, Any]) -> Record:
        record_id = int(data["id"])
        attachments = [
            Attachment(
                filename=a["filename"],
                size=int(a.get("size", 0)),
                fetch=self._fetcher(a["url"], record_id),
            )
            for a in data.get("attachments", [])
        ]
        return Record(id=record_id, content=data.get("content", ""), attachments=attachments)

    @staticmethod
    def _check_content(content: str, operation: str, record_id: Optional[int] = None):
        if len(content) > MAX_CONTENT_LENGTH:
            raise StoreError(f"Content longer than {MAX_CONTENT_LENGTH} characters",
                             operation=operation, record_id=record_id)

    async def create(self, container: int, attachments: Sequence[NewAttachment],
                     content: str) -> Record:
        if len(attachments) > self.max_attachments:
            raise StoreError(f"Too many attachments: {len(attachments)} > {self.max_attachments}",
                             operation="create")
        self._check_content(content, "create")

        path = f"/channels/{container}/messages"
        if attachments:
            payload = {
                "content": content,
                "attachments": [
                    {"id": i, "filename": filename}
                    for i, (filename, _) in enumerate(attachments)
                ],
            }
            files = [
                (f"files[{i}]", (filename, data, "application/octet-stream"))
                for i, (filename, data) in enumerate(attachments)
            ]
            response = await self._request("POST", path, "create",
                                           data={"payload_json": json.dumps(payload)},
                                           files=files)
        else:
            response = await self._request("POST", path, "create", json={"content": content})

        return self._to_record(response.json())

    async def edit(self, container: int, record_id: int, content: str) -> Record:
        self._check_content(content, "edit", record_id)
        response = await self._request("PATCH", f"/channels/{container}/messages/{record_id}",
                                       "edit", record_id=record_id, json={"content": content})
        return self._to_record(response.json())

    async def get(self, container: int, record_id: int) -> Record:
        response = await self._request("GET", f"/channels/{container}/messages/{record_id}",
                                       "get", record_id=record_id)
        return self._to_record(response.json())

    async def delete(self, container: int, record_id: int) -> None:
        await self._request("DELETE", f"/channels/{container}/messages/{record_id}",
                            "delete", record_id=record_id)

    async def list_page(self, container: int, before: Optional[int] = None,
                        limit: int = 100) -> List[Record]:
        params: Dict[str, Any] = {"limit": min(limit, MAX_PAGE_SIZE)}
        if before is not None:
            params["before"] = before
        response = await self._request("GET", f"/channels/{container}/messages",
                                       "list_page", params=params)
        return [self._to_record(m) for m in response.json()]
