"""
Transfer capability for binary payloads.

Files (avatars, post media) are not stored in the graph store. They are
pushed to a content-addressed storage node and referenced by hash. This
module defines the Transfer protocol the upload state machine drives and
an HTTP implementation against an IPFS-style ``/api/v0/add`` endpoint.

Invariants:
    - on_start is called exactly once, before the first progress report
    - Progress is reported as an integer percentage
    - A cancelled upload raises UploadAbortedError and never returns a body

How to change safely:
    - The response body is returned raw; parsing belongs to the uploader
"""

from __future__ import annotations

import asyncio
import logging
import os
import uuid
from abc import abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import httpx

from .errors import TransferError, UploadAbortedError

logger = logging.getLogger(__name__)

StartCallback = Callable[[str], Awaitable[None] | None]
ProgressCallback = Callable[[str, int], Awaitable[None] | None]

ADD_ENDPOINT = "/api/v0/add"


@dataclass(frozen=True)
class TransferResult:
    """Final response of a transfer.

    Attributes:
        upload_id: Id assigned when the transfer started
        response_body: Raw body returned by the storage node (JSON text)
    """

    upload_id: str
    response_body: str


@runtime_checkable
class Transfer(Protocol):
    """Protocol for the file transfer subsystem."""

    @abstractmethod
    async def upload(
        self,
        local_path: str,
        on_start: StartCallback,
        on_progress: ProgressCallback,
    ) -> TransferResult:
        """Upload a local file.

        Args:
            local_path: Path of the file on this device
            on_start: Called with the upload id once the transfer is accepted
            on_progress: Called with (upload_id, percent) as bytes are sent

        Raises:
            TransferError: If the transfer fails
            UploadAbortedError: If the transfer was cancelled
        """
        ...

    @abstractmethod
    async def cancel(self, upload_id: str) -> None:
        """Request cancellation of an in-flight upload."""
        ...


async def _call(callback: Callable[..., Any], *args: Any) -> None:
    result = callback(*args)
    if asyncio.iscoroutine(result):
        await result


class HttpTransferClient:
    """Transfer implementation over HTTP multipart uploads.

    Streams the file in chunks so progress can be reported while the body
    is being sent.

    Example:
        >>> async with HttpTransferClient("http://localhost:5001") as transfer:
        ...     result = await transfer.upload("/tmp/avatar.jpg", on_start, on_progress)
    """

    def __init__(
        self,
        base_url: str,
        *,
        chunk_size: int = 64 * 1024,
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Storage node API URL
            chunk_size: Bytes read per chunk
            timeout: Request timeout in seconds
            client: Optional preconfigured httpx client (tests inject a
                MockTransport here)
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.base_url = base_url.rstrip("/")
        self.chunk_size = chunk_size
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._active: set[str] = set()
        self._cancelled: set[str] = set()

    async def connect(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
            logger.debug(f"Transfer client connected to {self.base_url}")

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> HttpTransferClient:
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def cancel(self, upload_id: str) -> None:
        if upload_id in self._active:
            self._cancelled.add(upload_id)
            logger.info(f"Cancellation requested for upload {upload_id}")

    async def upload(
        self,
        local_path: str,
        on_start: StartCallback,
        on_progress: ProgressCallback,
    ) -> TransferResult:
        await self.connect()
        assert self._client is not None

        try:
            size = os.path.getsize(local_path)
        except OSError as e:
            raise TransferError(f"Cannot read {local_path}: {e}", local_path=local_path) from e

        upload_id = uuid.uuid4().hex
        self._active.add(upload_id)
        boundary = uuid.uuid4().hex

        try:
            await _call(on_start, upload_id)
            response = await self._client.post(
                f"{self.base_url}{ADD_ENDPOINT}",
                content=self._body(local_path, size, upload_id, boundary, on_progress),
                headers={"Content-Type": f"multipart/form-data; boundary={boundary}"},
            )
            if upload_id in self._cancelled:
                raise UploadAbortedError(local_path, upload_id)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TransferError(
                f"Upload rejected with status {e.response.status_code}",
                local_path=local_path,
                upload_id=upload_id,
            ) from e
        except httpx.HTTPError as e:
            raise TransferError(
                f"Upload failed: {e}",
                local_path=local_path,
                upload_id=upload_id,
            ) from e
        finally:
            self._active.discard(upload_id)
            self._cancelled.discard(upload_id)

        logger.debug(f"Upload {upload_id} of {local_path} finished ({size} bytes)")
        return TransferResult(upload_id=upload_id, response_body=response.text)

    async def _body(
        self,
        local_path: str,
        size: int,
        upload_id: str,
        boundary: str,
        on_progress: ProgressCallback,
    ) -> AsyncIterator[bytes]:
        """Yield the multipart body, reporting progress per chunk."""
        filename = os.path.basename(local_path)
        yield (
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="file"; filename="{filename}"\r\n'
            "Content-Type: application/octet-stream\r\n\r\n"
        ).encode()

        sent = 0
        with open(local_path, "rb") as fh:
            while True:
                if upload_id in self._cancelled:
                    raise UploadAbortedError(local_path, upload_id)
                chunk = await asyncio.to_thread(fh.read, self.chunk_size)
                if not chunk:
                    break
                sent += len(chunk)
                yield chunk
                await _call(on_progress, upload_id, sent * 100 // size if size else 100)

        yield f"\r\n--{boundary}--\r\n".encode()
