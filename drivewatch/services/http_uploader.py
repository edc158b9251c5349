"""HTTP adapter for the cloud object store."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, BinaryIO, Dict, Optional

import httpx

from drivewatch.errors import TransientUploadError, UploadRejectedError
from drivewatch.models import RemoteFile

logger = logging.getLogger(__name__)


class HTTPUploader:
    """
    Multipart "create file" client.

    Implements IUploader protocol. Sends ``metadata`` (JSON name/mimeType)
    and ``file`` parts to ``POST {base_url}/files`` and expects a JSON reply
    carrying ``id`` and ``webViewLink`` (or ``link``).

    Usage:
        async with HTTPUploader(url, token=token) as uploader:
            remote = await uploader.upload(fh, "report.pdf", "application/pdf")
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: int = 60,
        max_retries: int = 3,
        endpoint: str = "/files",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url
        self._token = token
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._endpoint = endpoint
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else None
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            headers=headers,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def upload(self, stream: BinaryIO, name: str, mime_type: str) -> RemoteFile:
        if not self._client:
            raise RuntimeError("HTTPUploader not initialized. Use 'async with' context.")

        metadata = json.dumps({"name": name, "mimeType": mime_type})
        start = stream.tell() if stream.seekable() else None
        last_error: Optional[str] = None

        for attempt in range(self._max_retries):
            if attempt and start is not None:
                stream.seek(start)
            files = {
                "metadata": (None, metadata, "application/json"),
                "file": (name, stream, mime_type),
            }
            try:
                response = await self._client.post(self._endpoint, files=files)
            except httpx.RequestError as exc:
                last_error = f"{type(exc).__name__}: {exc}"
                logger.debug("Upload attempt %d for %s failed: %s", attempt + 1, name, last_error)
            else:
                if response.status_code < 400:
                    return self._parse_remote(response)
                if response.status_code < 500:
                    raise UploadRejectedError(response.status_code, self._error_detail(response))
                last_error = f"server error {response.status_code}"
                logger.debug("Upload attempt %d for %s got %s", attempt + 1, name, last_error)

            if start is None:
                break
            if attempt < self._max_retries - 1:
                await asyncio.sleep(0.5 * (attempt + 1))

        raise TransientUploadError(f"upload of {name} failed: {last_error}")

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            return str(response.json())
        except ValueError:
            return response.text

    @staticmethod
    def _parse_remote(response: httpx.Response) -> RemoteFile:
        try:
            payload: Dict[str, Any] = response.json()
        except ValueError as exc:
            raise TransientUploadError(f"unreadable upload response: {exc}") from exc
        remote_id = payload.get("id")
        if not remote_id:
            raise TransientUploadError(f"upload response has no id: {payload}")
        link = payload.get("webViewLink") or payload.get("link")
        return RemoteFile(remote_id=str(remote_id), remote_link=link)
