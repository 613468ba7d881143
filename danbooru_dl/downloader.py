from __future__ import annotations

import os
import tempfile
import threading
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Literal, Sequence
from urllib.parse import urlsplit

import requests

from .errors import DanbooruError, MissingMediaUrlError
from .http_client import DanbooruClient
from .post import Post, is_excluded
from .run_log import LogSink
from .workers import run_bounded

# Danbooru reports ugoira posts as "zip"; their large_file_url points at a
# converted video in one of these containers.
VIDEO_CONTAINERS = ("webm", "mp4")

DownloadStatus = Literal["saved", "skipped", "excluded", "failed", "cancelled"]
SUCCESS_STATUSES = frozenset({"saved", "skipped", "excluded"})


@dataclass(frozen=True)
class DownloadRequest:
    post_id: int
    rating: str
    source_url: str
    extension: str
    destination: Path


@dataclass(frozen=True)
class DownloadOutcome:
    post_id: int
    status: DownloadStatus
    path: Path | None = None
    reason: str | None = None
    bytes_written: int = 0

    @property
    def ok(self) -> bool:
        return self.status in SUCCESS_STATUSES


@dataclass(frozen=True)
class DownloadSummary:
    outcomes: Sequence[DownloadOutcome] = ()

    @property
    def counts(self) -> dict[str, int]:
        c = Counter(o.status for o in self.outcomes)
        return {status: int(c.get(status, 0)) for status in ("saved", "skipped", "excluded", "failed", "cancelled")}

    @property
    def failures(self) -> list[DownloadOutcome]:
        return [o for o in self.outcomes if o.status == "failed"]


def _video_container(url: str | None) -> str | None:
    if not url:
        return None
    path = urlsplit(url).path.lower()
    for ext in VIDEO_CONTAINERS:
        if f".{ext}" in path:
            return ext
    return None


def resolve_download(post: Post, output_root: str | Path) -> DownloadRequest:
    """
    Work out where a post's media comes from and where it lands on disk.

    Raises MissingMediaUrlError when the post carries no usable URL.
    """
    ext = (post.file_extension or "").strip().lstrip(".").lower()
    video = _video_container(post.large_file_url)

    if ext == "zip" and video is not None and post.large_file_url:
        url = post.large_file_url
        ext = video
    elif post.file_url:
        url = post.file_url
    elif post.large_file_url:
        url = post.large_file_url
    else:
        raise MissingMediaUrlError(f"Post {post.id} has no file_url or large_file_url")

    if not ext:
        ext = os.path.splitext(urlsplit(url).path)[1].lstrip(".").lower() or "bin"

    destination = Path(output_root) / post.rating_folder / f"{post.score}_{post.id}.{ext}"
    return DownloadRequest(
        post_id=post.id,
        rating=post.rating,
        source_url=url,
        extension=ext,
        destination=destination,
    )


class _Cancelled(Exception):
    pass


def _stream_to_file(
    client: DanbooruClient,
    req: DownloadRequest,
    *,
    chunk_size: int,
    cancel: threading.Event | None,
) -> int:
    folder = req.destination.parent
    fd, tmp_name = tempfile.mkstemp(prefix=f"{req.destination.stem}.", suffix=".part", dir=str(folder))
    tmp = Path(tmp_name)
    written = 0

    try:
        with os.fdopen(fd, "wb") as fp:
            resp = client.open_asset(req.source_url, post_id=req.post_id)
            with resp:
                for chunk in resp.iter_content(chunk_size=chunk_size):
                    if cancel is not None and cancel.is_set():
                        raise _Cancelled()
                    if not chunk:
                        continue
                    fp.write(chunk)
                    written += len(chunk)
        os.replace(tmp, req.destination)
    finally:
        if tmp.exists():
            tmp.unlink()

    return written


def download_post(
    client: DanbooruClient,
    post: Post,
    output_root: str | Path,
    excluded: Iterable[str] = (),
    *,
    chunk_size: int = 64 * 1024,
    cancel: threading.Event | None = None,
) -> DownloadOutcome:
    """
    Download one post. Never raises for per-item problems; the outcome says what happened.

    An existing destination file counts as already downloaded, so repeated runs
    make no network request for it.
    """
    if cancel is not None and cancel.is_set():
        return DownloadOutcome(post_id=post.id, status="cancelled")

    try:
        req = resolve_download(post, output_root)
    except MissingMediaUrlError as e:
        return DownloadOutcome(post_id=post.id, status="failed", reason=str(e))

    try:
        req.destination.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        return DownloadOutcome(post_id=post.id, status="failed", path=req.destination, reason=str(e))

    if req.destination.exists():
        return DownloadOutcome(post_id=post.id, status="skipped", path=req.destination)

    if is_excluded(post, excluded):
        return DownloadOutcome(post_id=post.id, status="excluded", path=req.destination)

    try:
        written = _stream_to_file(client, req, chunk_size=chunk_size, cancel=cancel)
    except _Cancelled:
        return DownloadOutcome(post_id=post.id, status="cancelled", path=req.destination)
    except (DanbooruError, requests.RequestException, OSError) as e:
        return DownloadOutcome(post_id=post.id, status="failed", path=req.destination, reason=str(e))

    return DownloadOutcome(post_id=post.id, status="saved", path=req.destination, bytes_written=written)


def download_all(
    client: DanbooruClient,
    posts: Iterable[Post],
    output_root: str | Path,
    excluded: Iterable[str] = (),
    *,
    workers: int,
    chunk_size: int = 64 * 1024,
    cancel: threading.Event | None = None,
    logger: LogSink | None = None,
    on_progress: Callable[[DownloadOutcome], None] | None = None,
) -> DownloadSummary:
    codes = frozenset(excluded)
    outcomes: list[DownloadOutcome] = []

    def _unit(post: Post) -> DownloadOutcome:
        return download_post(client, post, output_root, codes, chunk_size=chunk_size, cancel=cancel)

    for outcome in run_bounded(_unit, posts, workers=workers, cancel=cancel):
        outcomes.append(outcome)

        if logger is not None:
            if outcome.status == "saved":
                logger.info("post_saved", post_id=outcome.post_id, path=str(outcome.path), bytes=outcome.bytes_written)
            elif outcome.status == "failed":
                logger.warning("post_failed", post_id=outcome.post_id, reason=outcome.reason)

        if on_progress is not None:
            on_progress(outcome)

    return DownloadSummary(outcomes=tuple(outcomes))
