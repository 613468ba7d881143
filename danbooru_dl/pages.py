from __future__ import annotations

from typing import Sequence

from bs4 import BeautifulSoup

from .errors import NoResultsError, PageCountError
from .http_client import DanbooruClient

# Danbooru renders "No posts found." as a paragraph inside #posts.
NO_POSTS_SELECTOR = "#posts > div > p"
PAGINATOR_SELECTOR = ".paginator-page.desktop-only"


def parse_page_count(html: str, *, tags: Sequence[str] | str | None = None) -> int:
    """
    Read the total page count from a rendered post listing.

    Raises NoResultsError when the listing shows the "no posts" marker, and
    PageCountError when the last pagination label is not a number. A listing
    without pagination controls fits on one page.
    """
    soup = BeautifulSoup(html, "html.parser")

    if soup.select(NO_POSTS_SELECTOR):
        raise NoResultsError(tags)

    labels = soup.select(PAGINATOR_SELECTOR)
    if not labels:
        return 1

    text = labels[-1].get_text(strip=True)
    try:
        count = int(text)
    except ValueError as e:
        raise PageCountError(f"Pagination label is not a page number: {text!r}") from e

    if count < 1:
        raise PageCountError(f"Pagination label is not a positive page number: {text!r}")
    return count


def count_pages(
    client: DanbooruClient,
    encoded_tags: str,
    *,
    tags: Sequence[str] | None = None,
) -> int:
    html = client.fetch_listing_html(encoded_tags)
    return parse_page_count(html, tags=list(tags) if tags is not None else encoded_tags)
