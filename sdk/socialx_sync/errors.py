"""
Error types for the SocialX sync layer.

This module defines the exception types raised below the operation boundary:
- SyncError: Base exception
- NotAuthenticatedError: No current identity for an identity-scoped call
- NotFoundError: Record missing in the graph store
- GraphStoreError: Store-level rejection or replication failure
- TransferError: File transfer failed
- UploadAbortedError: Upload was cancelled before completion
- MalformedResponseError: Transfer response could not be parsed
- PathSegmentError: Programmer error while building a store path

Invariants:
    - All runtime errors inherit from SyncError
    - Sync operations convert SyncError (and any other Exception) into a
      failed activity entry; they never reach the UI as raised exceptions
    - PathSegmentError is a ValueError, not a SyncError: a bad segment is a
      bug in the caller and fails fast
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class SyncError(Exception):
    """Base exception for all sync layer errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "SYNC_ERROR"
        self.details = details or {}


class NotAuthenticatedError(SyncError):
    """An identity-scoped call was made without a current identity."""

    def __init__(self, message: str = "No authenticated identity") -> None:
        super().__init__(message, code="NOT_AUTHENTICATED")


class NotFoundError(SyncError):
    """Record not found in the graph store.

    Raised when:
    - Profile doesn't exist for a username
    - Post meta doesn't exist for a post id
    """

    def __init__(
        self,
        message: str,
        resource_type: str,
        resource_id: str,
    ) -> None:
        super().__init__(
            message,
            code="NOT_FOUND",
            details={
                "resource_type": resource_type,
                "resource_id": resource_id,
            },
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class GraphStoreError(SyncError):
    """The graph store rejected a read or write."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message, code="GRAPH_STORE_ERROR", details={"path": path})
        self.path = path


class TransferError(SyncError):
    """File transfer failed.

    Raised when:
    - Transfer endpoint is unreachable
    - Transfer endpoint returns an error status
    - Local file can't be read
    """

    def __init__(
        self,
        message: str,
        local_path: Optional[str] = None,
        upload_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="TRANSFER_ERROR",
            details={"local_path": local_path, "upload_id": upload_id},
        )
        self.local_path = local_path
        self.upload_id = upload_id


class UploadAbortedError(TransferError):
    """Upload was cancelled before the transfer completed."""

    def __init__(self, local_path: str, upload_id: Optional[str] = None) -> None:
        super().__init__(
            f"Upload of '{local_path}' was aborted",
            local_path=local_path,
            upload_id=upload_id,
        )
        self.code = "UPLOAD_ABORTED"


class MalformedResponseError(SyncError):
    """A remote response could not be parsed.

    Attributes:
        body: The raw response body (truncated)
    """

    def __init__(self, message: str, body: Optional[str] = None) -> None:
        truncated = body[:200] if body else body
        super().__init__(
            message,
            code="MALFORMED_RESPONSE",
            details={"body": truncated},
        )
        self.body = truncated


class PathSegmentError(ValueError):
    """A path segment is empty or contains the path separator."""

    def __init__(self, segment: Any, reason: str) -> None:
        super().__init__(f"Invalid path segment {segment!r}: {reason}")
        self.segment = segment
        self.reason = reason
