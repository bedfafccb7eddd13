from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Generic, List, TypeVar

from .errors import InvalidInputError

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    """One offset/limit page: the items plus the provider's `next` marker."""

    items: List[T] = field(default_factory=list)
    next: str = ""
    total: int = 0

    @staticmethod
    def from_spotify(payload: Dict[str, Any], parse: Callable[[Any], T]) -> "Page[T]":
        raw = payload.get("items") if isinstance(payload, dict) else None
        return Page(
            items=[parse(item) for item in (raw or [])],
            next=str(payload.get("next") or "") if isinstance(payload, dict) else "",
            total=int(payload.get("total") or 0) if isinstance(payload, dict) else 0,
        )


PageFetcher = Callable[[int, int], Awaitable[Page[T]]]


async def collect_paged(fetch: PageFetcher, *, page_size: int, max_items: int = 0) -> List[T]:
    """Fetch pages at increasing offsets until `max_items` is reached or the provider runs out.

    max_items == 0 means "everything". The limit of the last request is shrunk so
    we never ask for more than `max_items` in total.
    """

    if max_items < 0:
        raise InvalidInputError("max must be >= 0")

    limit = page_size
    if 0 < max_items < limit:
        limit = max_items

    out: List[T] = []
    offset = 0
    while True:
        page = await fetch(limit, offset)
        out.extend(page.items)

        if max_items > 0 and len(out) >= max_items:
            return out[:max_items]
        if not page.next or not page.items:
            return out

        offset += limit
        if max_items > 0:
            remaining = max_items - len(out)
            if remaining < limit:
                limit = remaining
