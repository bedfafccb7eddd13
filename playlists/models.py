from dataclasses import dataclass, field
from typing import List


@dataclass(frozen=True)
class MergeOptions:
    """How a merged playlist is built.

    deduplicate drops repeated track URIs, keeping the first occurrence.
    public and description are applied to the created playlist.
    """

    deduplicate: bool = False
    public: bool = False
    description: str = ""


@dataclass(frozen=True)
class MergeResult:
    new_playlist_id: str
    track_count: int
    duplicates_removed: int
    verified: bool
    missing_uris: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class VerificationResult:
    ok: bool
    missing_uris: List[str] = field(default_factory=list)
