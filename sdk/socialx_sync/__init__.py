"""
SocialX sync layer - data synchronization and activity tracking.

This package sits between the UI and the decentralized graph store:
- Path addressing for the store's flat table namespace
- ActivityLedger tracking every in-flight operation
- Sync operations (auth gate, ledger entry, remote call, sync event)
- Upload state machine for avatar and media transfers

Example:
    >>> from socialx_sync import SyncService, InMemorySession
    >>>
    >>> session = InMemorySession()
    >>> session.login("alice", pub="pk_alice")
    >>> async with SyncService(session=session) as sync:
    ...     entry = await sync.update_current_profile(full_name="Alice A.")
    ...     entry.status
    <ActivityStatus.DONE: 'done'>

Invariants:
    - Unauthenticated operations are silent no-ops
    - Every begun activity is ended exactly once
    - Errors are reported through the ledger, never raised to callers

Version: 1.0.0
"""

__version__ = "1.0.0"

from .config import Settings
from .errors import (
    GraphStoreError,
    MalformedResponseError,
    NotAuthenticatedError,
    NotFoundError,
    PathSegmentError,
    SyncError,
    TransferError,
    UploadAbortedError,
)
from .events import EventBus, EventType, SyncEvent
from .ledger import ActivityEntry, ActivityLedger, ActivityStatus, OperationKind
from .models import (
    CurrentUser,
    FriendInput,
    FriendsSuggestionsInput,
    Post,
    Profile,
    SearchProfilesInput,
    UpdateProfileInput,
)
from .operations import SUGGESTIONS_LIMIT, SyncContext, SyncOperation
from .paths import Path, Table, TableEnum, resolve
from .service import SyncService, setup_logging
from .session import Identity, InMemorySession, Session
from .store import GraphStore, InMemoryGraphStore
from .transfer import HttpTransferClient, Transfer, TransferResult
from .uploads import UploadPhase, UploadStateMachine, UploadStatus, UploadTracker

__all__ = [
    # Version
    "__version__",
    # Service
    "SyncService",
    "Settings",
    "setup_logging",
    # Operations
    "SyncOperation",
    "SyncContext",
    "SUGGESTIONS_LIMIT",
    # Ledger and events
    "ActivityLedger",
    "ActivityEntry",
    "ActivityStatus",
    "OperationKind",
    "EventBus",
    "EventType",
    "SyncEvent",
    # Uploads
    "UploadStateMachine",
    "UploadStatus",
    "UploadPhase",
    "UploadTracker",
    "Transfer",
    "TransferResult",
    "HttpTransferClient",
    # Store and session
    "GraphStore",
    "InMemoryGraphStore",
    "Path",
    "Table",
    "TableEnum",
    "resolve",
    "Session",
    "Identity",
    "InMemorySession",
    # Models
    "Profile",
    "Post",
    "UpdateProfileInput",
    "FriendInput",
    "SearchProfilesInput",
    "FriendsSuggestionsInput",
    "CurrentUser",
    # Errors
    "SyncError",
    "NotAuthenticatedError",
    "NotFoundError",
    "GraphStoreError",
    "TransferError",
    "UploadAbortedError",
    "MalformedResponseError",
    "PathSegmentError",
]
