from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from .http_client import DanbooruClient


@dataclass(frozen=True)
class TagMatch:
    name: str
    post_count: int
    category: int | None = None


def search_pattern(term: str) -> str:
    """Turn a bare term into a prefix search; explicit wildcards are kept as given."""
    t = (term or "").strip().replace(" ", "_")
    if not t:
        raise ValueError("search term must be non-empty")
    if "*" not in t:
        t = f"{t}*"
    return t


def _tag_match(item: Mapping[str, Any]) -> TagMatch | None:
    name = item.get("name")
    if not isinstance(name, str) or not name.strip():
        return None

    try:
        count = int(item.get("post_count") or 0)
    except (TypeError, ValueError):
        count = 0

    category = item.get("category")
    return TagMatch(
        name=name.strip(),
        post_count=count,
        category=category if isinstance(category, int) else None,
    )


def search_tags(client: DanbooruClient, term: str, *, limit: int = 20) -> list[TagMatch]:
    pattern = search_pattern(term)
    items = client.search_tags(pattern, limit)

    out: list[TagMatch] = []
    for item in items:
        match = _tag_match(item)
        if match is not None:
            out.append(match)

    out.sort(key=lambda m: (-m.post_count, m.name))
    return out
