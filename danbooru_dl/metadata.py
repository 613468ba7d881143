from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Iterable, Literal, Sequence

from pydantic import TypeAdapter, ValidationError

from .errors import DanbooruError
from .http_client import DanbooruClient
from .post import Post, is_excluded
from .run_log import LogSink
from .workers import run_bounded

_POST_LIST = TypeAdapter(list[Post])

PageStatus = Literal["ok", "failed", "cancelled"]


@dataclass(frozen=True)
class PageOutcome:
    page: int
    status: PageStatus
    posts: Sequence[Post] = ()
    dropped: int = 0
    reason: str | None = None


@dataclass(frozen=True)
class MetadataResult:
    outcomes: Sequence[PageOutcome] = ()
    posts: Sequence[Post] = field(default_factory=tuple)

    @property
    def failed_pages(self) -> list[int]:
        return sorted(o.page for o in self.outcomes if o.status == "failed")

    @property
    def dropped(self) -> int:
        return sum(o.dropped for o in self.outcomes)


def decode_posts(payload: Any, *, page: int | None = None) -> list[Post]:
    """Validate one posts.json body; any malformed record fails the whole page."""
    try:
        return _POST_LIST.validate_python(payload)
    except ValidationError as e:
        where = f"page {page}" if page is not None else "posts payload"
        raise DanbooruError(f"Failed to decode {where}: {e.error_count()} invalid field(s)") from e


def filter_by_rating(posts: Iterable[Post], excluded: Iterable[str]) -> list[Post]:
    codes = frozenset(excluded)
    if not codes:
        return list(posts)
    return [p for p in posts if not is_excluded(p, codes)]


def fetch_page(
    client: DanbooruClient,
    encoded_tags: str,
    page: int,
    excluded: Iterable[str],
    *,
    cancel: threading.Event | None = None,
) -> PageOutcome:
    if cancel is not None and cancel.is_set():
        return PageOutcome(page=page, status="cancelled")

    try:
        posts = decode_posts(client.fetch_posts_page(encoded_tags, page), page=page)
    except DanbooruError as e:
        return PageOutcome(page=page, status="failed", reason=str(e))

    kept = filter_by_rating(posts, excluded)
    return PageOutcome(page=page, status="ok", posts=tuple(kept), dropped=len(posts) - len(kept))


def fetch_all_posts(
    client: DanbooruClient,
    encoded_tags: str,
    total_pages: int,
    excluded: Iterable[str],
    *,
    workers: int,
    cancel: threading.Event | None = None,
    logger: LogSink | None = None,
) -> MetadataResult:
    """
    Fetch pages 1..total_pages concurrently and merge the posts that survive the
    rating filter. Failed pages contribute nothing; their outcomes are kept.
    """
    codes = frozenset(excluded)
    outcomes: list[PageOutcome] = []

    def _unit(page: int) -> PageOutcome:
        return fetch_page(client, encoded_tags, page, codes, cancel=cancel)

    for outcome in run_bounded(_unit, range(1, int(total_pages) + 1), workers=workers, cancel=cancel):
        outcomes.append(outcome)

        if logger is None:
            continue
        if outcome.status == "ok":
            logger.info(
                "page_fetched",
                page=outcome.page,
                kept=len(outcome.posts),
                dropped=outcome.dropped,
            )
        elif outcome.status == "failed":
            logger.warning("page_failed", page=outcome.page, reason=outcome.reason)

    outcomes.sort(key=lambda o: o.page)
    posts = [p for o in outcomes for p in o.posts]
    return MetadataResult(outcomes=tuple(outcomes), posts=tuple(posts))
