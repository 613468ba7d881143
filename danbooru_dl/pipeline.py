from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Sequence

from .config import Credentials
from .config_schema import AppConfig
from .downloader import DownloadOutcome, DownloadSummary, download_all
from .errors import DanbooruError, NoResultsError, OutputDirectoryError
from .http_client import DanbooruClient
from .metadata import MetadataResult, fetch_all_posts
from .pages import count_pages
from .run_log import LogSink
from .tags import encode_tags
from .workers import default_workers


class PipelineState(str, Enum):
    INIT = "init"
    PAGES_COUNTED = "pages_counted"
    POSTS_FETCHED = "posts_fetched"
    DONE = "done"
    ABORTED = "aborted"


@dataclass(frozen=True)
class RunConfiguration:
    tags: Sequence[str]
    output_root: Path
    excluded: frozenset[str] = frozenset()
    credentials: Credentials | None = None


@dataclass(frozen=True)
class PipelineResult:
    state: PipelineState
    output_root: Path
    total_pages: int = 0
    abort_reason: str | None = None
    message: str | None = None
    metadata: MetadataResult = field(default_factory=MetadataResult)
    downloads: DownloadSummary = field(default_factory=DownloadSummary)

    @property
    def aborted(self) -> bool:
        return self.state is PipelineState.ABORTED


def prepare_output_root(path: str | Path, fallback: str | Path | None = None) -> Path:
    """
    Create the output root, falling back to a second directory if that fails.

    Returns the directory actually in use. Raises OutputDirectoryError when
    neither can be created.
    """
    primary = Path(path)
    try:
        primary.mkdir(parents=True, exist_ok=True)
        return primary
    except OSError as first:
        if fallback is None or Path(fallback) == primary:
            raise OutputDirectoryError(f"Cannot create output directory {primary}: {first}") from first

        alt = Path(fallback)
        try:
            alt.mkdir(parents=True, exist_ok=True)
        except OSError as second:
            raise OutputDirectoryError(
                f"Cannot create output directory {primary} ({first}) or fallback {alt} ({second})"
            ) from second
        return alt


def run_pipeline(
    run: RunConfiguration,
    *,
    client: DanbooruClient | None = None,
    config: AppConfig | None = None,
    logger: LogSink | None = None,
    cancel: threading.Event | None = None,
    on_progress: Callable[[DownloadOutcome], None] | None = None,
) -> PipelineResult:
    """
    Count pages, fetch every page of post metadata, then download the posts.

    Terminal conditions come back as an ABORTED result rather than an exception:
    no results for the tags, a failed page count, or nothing left to download
    after filtering. Per-page and per-post failures never abort the run.

    Without an explicit client one is built from config and run.credentials
    and closed afterwards.
    """
    cfg = config or AppConfig()
    if client is None:
        with DanbooruClient.from_config(cfg, credentials=run.credentials) as owned:
            return run_pipeline(
                run,
                client=owned,
                config=cfg,
                logger=logger,
                cancel=cancel,
                on_progress=on_progress,
            )

    if cancel is None:
        cancel = threading.Event()
    workers = default_workers(cfg.download.workers, cap=cfg.download.max_workers)
    encoded = encode_tags(run.tags)
    log = logger.bind(tags=encoded) if logger is not None else None

    def _abort(
        reason: str,
        message: str,
        *,
        total_pages: int = 0,
        metadata: MetadataResult | None = None,
    ) -> PipelineResult:
        if log is not None:
            log.warning("pipeline_aborted", reason=reason, message=message)
        return PipelineResult(
            state=PipelineState.ABORTED,
            output_root=run.output_root,
            abort_reason=reason,
            message=message,
            total_pages=total_pages,
            metadata=metadata or MetadataResult(),
        )

    try:
        total_pages = count_pages(client, encoded, tags=run.tags)
    except NoResultsError as e:
        return _abort("no_results", str(e))
    except DanbooruError as e:
        return _abort("page_count_failed", f"Could not count result pages for tags {list(run.tags)}: {e}")

    if log is not None:
        log.info("pages_counted", total_pages=total_pages, workers=workers)

    metadata = fetch_all_posts(
        client,
        encoded,
        total_pages,
        run.excluded,
        workers=workers,
        cancel=cancel,
        logger=log,
    )

    if log is not None:
        log.info(
            "posts_fetched",
            posts=len(metadata.posts),
            dropped=metadata.dropped,
            failed_pages=metadata.failed_pages,
        )

    if not metadata.posts:
        return _abort(
            "nothing_to_download",
            f"No posts to download for tags {list(run.tags)} after rating filter",
            total_pages=total_pages,
            metadata=metadata,
        )

    downloads = download_all(
        client,
        metadata.posts,
        run.output_root,
        run.excluded,
        workers=workers,
        chunk_size=cfg.download.chunk_size,
        cancel=cancel,
        logger=log,
        on_progress=on_progress,
    )

    if log is not None:
        log.info("pipeline_completed", **downloads.counts)

    return PipelineResult(
        state=PipelineState.DONE,
        output_root=run.output_root,
        total_pages=total_pages,
        metadata=metadata,
        downloads=downloads,
    )
