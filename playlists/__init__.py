"""Playlist merge engine and input helpers."""

from .models import MergeOptions, MergeResult, VerificationResult
from .service import (
    NoPlaylistsMatchedError,
    PermissionDeniedError,
    PlaylistClient,
    PlaylistError,
    PlaylistService,
    deduplicate,
)

__all__ = [
    "MergeOptions",
    "MergeResult",
    "NoPlaylistsMatchedError",
    "PermissionDeniedError",
    "PlaylistClient",
    "PlaylistError",
    "PlaylistService",
    "VerificationResult",
    "deduplicate",
]
