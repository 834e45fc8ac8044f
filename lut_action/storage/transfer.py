"""Streaming download and chunked upload to pre-signed URLs."""

import asyncio
import logging
import os
import shutil
from typing import Callable, List, Optional
from urllib.parse import urlparse
from urllib.request import url2pathname

import httpx

from lut_action.errors import ProcessingError, ResourceLimitError, TransientTransportError
from lut_action.frameio.client import ChunkTarget

logger = logging.getLogger(__name__)

PercentCallback = Callable[[float], None]

DOWNLOAD_CHUNK_BYTES = 1024 * 1024


def _read_range(path: str, offset: int, size: int) -> bytes:
    with open(path, "rb") as f:
        f.seek(offset)
        return f.read(size)


def _redact(url: str) -> str:
    """Drop the query string, which holds the signature on pre-signed URLs."""
    return url.split("?", 1)[0]


class TransferEngine:
    """Moves asset bytes between the remote store and local disk.

    The engine does not own retries: a failed chunk aborts the transfer and
    the job fails with a retryable error.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, max_bytes: Optional[int] = None):
        self._client = client
        self._owns_client = client is None
        self.max_bytes = max_bytes

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(60.0, connect=10.0), follow_redirects=True
            )
        return self._client

    async def close(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    def _check_size(self, size: int, source: str) -> None:
        if self.max_bytes is not None and size > self.max_bytes:
            raise ResourceLimitError(
                f"Asset exceeds maximum size of {self.max_bytes} bytes",
                code="ASSET_TOO_LARGE",
                details={"size": size, "max_bytes": self.max_bytes, "source": _redact(source)},
            )

    # Download

    async def fetch(self, source: str, dest: str, on_progress: Optional[PercentCallback] = None) -> int:
        """Copy ``source`` (local path, file:// or http(s) URL) to ``dest``.

        Returns the number of bytes written.
        """
        scheme = urlparse(source).scheme
        if scheme in ("http", "https"):
            return await self._fetch_http(source, dest, on_progress)
        path = url2pathname(urlparse(source).path) if scheme == "file" else source
        return await self._fetch_local(path, dest, on_progress)

    async def _fetch_local(self, path: str, dest: str, on_progress: Optional[PercentCallback]) -> int:
        try:
            size = os.path.getsize(path)
        except OSError as exc:
            raise TransientTransportError(f"Source not readable: {exc}", code="DOWNLOAD_FAILED") from exc
        self._check_size(size, path)
        await asyncio.to_thread(shutil.copyfile, path, dest)
        if on_progress:
            on_progress(100.0)
        return size

    async def _fetch_http(self, url: str, dest: str, on_progress: Optional[PercentCallback]) -> int:
        written = 0
        try:
            async with self.client.stream("GET", url) as response:
                if response.status_code >= 400:
                    await response.aread()
                    raise TransientTransportError(
                        f"Download failed: {response.status_code} {response.reason_phrase}",
                        code="DOWNLOAD_FAILED",
                        details={"status": response.status_code, "url": _redact(url)},
                    )
                total = int(response.headers.get("content-length") or 0)
                if total:
                    self._check_size(total, url)

                last_percent = -1.0
                with open(dest, "wb") as f:
                    async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_BYTES):
                        written += len(chunk)
                        self._check_size(written, url)
                        f.write(chunk)
                        if on_progress and total:
                            percent = round(min(100.0, written / total * 100), 1)
                            if percent > last_percent:
                                last_percent = percent
                                on_progress(percent)
        except httpx.HTTPError as exc:
            raise TransientTransportError(
                f"Download failed: {exc}", code="DOWNLOAD_FAILED", details={"url": _redact(url)}
            ) from exc

        logger.info("Downloaded %d bytes from %s", written, _redact(url))
        return written

    # Upload

    async def upload(
        self,
        chunks: List[ChunkTarget],
        file_path: str,
        content_type: str,
        on_progress: Optional[PercentCallback] = None,
    ) -> int:
        """PUT consecutive byte ranges of ``file_path`` to the planned URLs.

        Chunk i starts where chunk i-1 ended. The last chunk is clipped to the
        file size and any targets past end of file are skipped. A plan that
        ends before the file does raises UPLOAD_INCOMPLETE. Returns the
        number of bytes sent.
        """
        file_size = os.path.getsize(file_path)
        offset = 0
        for index, target in enumerate(chunks):
            to_read = min(target.size, file_size - offset)
            if to_read <= 0:
                break
            data = await asyncio.to_thread(_read_range, file_path, offset, to_read)

            try:
                response = await self.client.put(
                    target.url,
                    content=data,
                    headers={"Content-Type": content_type, "x-amz-acl": "private"},
                )
            except httpx.HTTPError as exc:
                raise TransientTransportError(
                    f"Chunk {index + 1}/{len(chunks)} upload failed: {exc}",
                    code="UPLOAD_FAILED",
                ) from exc

            if response.status_code >= 400:
                raise TransientTransportError(
                    f"Chunk {index + 1}/{len(chunks)} upload failed: "
                    f"{response.status_code} {response.text}",
                    code="UPLOAD_FAILED",
                    details={"status": response.status_code, "chunk": index},
                )

            offset += to_read
            if on_progress:
                on_progress(round(offset / file_size * 100, 1) if file_size else 100.0)

        if offset != file_size:
            raise ProcessingError(
                f"Upload plan covers {offset} of {file_size} bytes",
                code="UPLOAD_INCOMPLETE",
                details={"sent": offset, "expected": file_size},
            )
        logger.info("Uploaded %d bytes in %d chunk(s)", offset, len(chunks))
        return offset
