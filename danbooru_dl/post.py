from __future__ import annotations

from typing import Iterable

from pydantic import BaseModel, ConfigDict, Field

RATING_FOLDERS: dict[str, str] = {
    "g": "general",
    "s": "sensitive",
    "q": "questionable",
    "e": "explicit",
}
UNKNOWN_RATING_FOLDER = "unknown"

# Projection requested from posts.json; Post is decoded from exactly these keys.
POST_FIELDS = ("rating", "file_url", "id", "score", "file_ext", "large_file_url")


class Post(BaseModel):
    """One post record as returned by the posts.json listing."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    id: int
    score: int
    rating: str
    file_extension: str = Field(alias="file_ext")
    file_url: str | None = None
    large_file_url: str | None = None

    @property
    def rating_folder(self) -> str:
        return rating_folder(self.rating)

    @property
    def has_media_url(self) -> bool:
        return bool(self.file_url or self.large_file_url)


def rating_folder(code: str) -> str:
    return RATING_FOLDERS.get((code or "").strip().lower(), UNKNOWN_RATING_FOLDER)


def excluded_ratings(
    *,
    general: bool = False,
    sensitive: bool = False,
    questionable: bool = False,
    explicit: bool = False,
) -> frozenset[str]:
    flags = {"g": general, "s": sensitive, "q": questionable, "e": explicit}
    return frozenset(code for code, on in flags.items() if on)


def is_excluded(post: Post, excluded: Iterable[str]) -> bool:
    return (post.rating or "").strip().lower() in set(excluded)
