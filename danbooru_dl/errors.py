from __future__ import annotations


class ConfigError(RuntimeError):
    """Raised when configuration is missing or invalid."""


class DanbooruError(RuntimeError):
    """Raised when a Danbooru request fails or its body cannot be decoded."""


class PageCountError(DanbooruError):
    """Raised when the listing page carries a pagination label that is not a number."""


class NoResultsError(RuntimeError):
    """Raised when a tag query matches no posts at all."""

    def __init__(self, tags: object) -> None:
        super().__init__(f"No results found for tags: {tags}")
        self.tags = tags


class MissingMediaUrlError(RuntimeError):
    """Raised when a post has neither file_url nor large_file_url."""


class OutputDirectoryError(RuntimeError):
    """Raised when neither the output directory nor its fallback can be created."""
