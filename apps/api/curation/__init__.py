"""Curation client: collection store, mutation pipeline, derived views and lock gate."""

from .types import (
    INBOX,
    CurationError,
    ItemPatch,
    ItemRecord,
    ProfileSettings,
    RemoteStoreError,
    SessionLockedError,
)
from .store import CollectionStore
from .views import TRASH_RETENTION, ViewSnapshot, derive_views
from .lock import ChallengeOutcome, LockState, SessionLockGate, SessionMarker
from .remote import BaseAuthProvider, BaseRemoteStore, HttpAuthProvider, HttpRemoteStore
from .pipeline import MutationPipeline, MutationResult
from .session import CuratorSession
