from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


@dataclass(frozen=True)
class User:
    id: str = ""
    display_name: str = ""

    @staticmethod
    def from_dict(payload: Any) -> "User":
        payload = _as_dict(payload)
        return User(
            id=str(payload.get("id") or ""),
            display_name=str(payload.get("display_name") or ""),
        )


@dataclass(frozen=True)
class Artist:
    id: str = ""
    name: str = ""


@dataclass(frozen=True)
class Track:
    """Read-only projection of a Spotify track object."""

    uri: str
    name: str = ""
    id: str = ""
    artists: List[Artist] = field(default_factory=list)
    album: str = ""

    @property
    def artist_names(self) -> List[str]:
        return [a.name for a in self.artists if a.name]

    @staticmethod
    def from_dict(payload: Any) -> Optional["Track"]:
        """Return None for null/local items without a URI."""

        payload = _as_dict(payload)
        uri = str(payload.get("uri") or "").strip()
        if not uri:
            return None

        artists = []
        for a in payload.get("artists") or []:
            if isinstance(a, dict):
                artists.append(Artist(id=str(a.get("id") or ""), name=str(a.get("name") or "")))

        return Track(
            uri=uri,
            name=str(payload.get("name") or ""),
            id=str(payload.get("id") or ""),
            artists=artists,
            album=str(_as_dict(payload.get("album")).get("name") or ""),
        )


@dataclass(frozen=True)
class Playlist:
    """Subset of a simplified playlist object."""

    id: str
    name: str = ""
    description: str = ""
    public: bool = False
    collaborative: bool = False
    owner: User = field(default_factory=User)
    tracks_total: int = 0
    snapshot_id: str = ""

    @staticmethod
    def from_dict(payload: Any) -> "Playlist":
        payload = _as_dict(payload)
        try:
            total = int(_as_dict(payload.get("tracks")).get("total") or 0)
        except (TypeError, ValueError):
            total = 0
        return Playlist(
            id=str(payload.get("id") or ""),
            name=str(payload.get("name") or ""),
            description=str(payload.get("description") or ""),
            public=bool(payload.get("public")),
            collaborative=bool(payload.get("collaborative")),
            owner=User.from_dict(payload.get("owner")),
            tracks_total=total,
            snapshot_id=str(payload.get("snapshot_id") or ""),
        )
