from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Sequence

from .config import load_config, resolve_credentials
from .config_schema import AppConfig
from .errors import ConfigError, DanbooruError, OutputDirectoryError
from .http_client import DanbooruClient
from .pipeline import RunConfiguration, prepare_output_root, run_pipeline
from .post import excluded_ratings
from .report import build_run_report, format_run_report
from .run_log import RunLogger
from .search import search_tags


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="danbooru_dl",
        description="Bulk-download Danbooru posts by tag, sorted into folders by rating.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    dl = subparsers.add_parser(
        "download",
        aliases=["dl"],
        help="Download every post matching a set of tags.",
    )
    dl.add_argument(
        "-t",
        "--tag",
        dest="tags",
        action="append",
        required=True,
        help="Tag to search for (can be used multiple times).",
    )
    dl.add_argument(
        "-o",
        "--output",
        default="output",
        help="Output directory.",
    )
    dl.add_argument("-g", "--general", action="store_true", help="Exclude posts rated 'general'.")
    dl.add_argument("-s", "--sensitive", action="store_true", help="Exclude posts rated 'sensitive'.")
    dl.add_argument("-q", "--questionable", action="store_true", help="Exclude posts rated 'questionable'.")
    dl.add_argument("-e", "--explicit", action="store_true", help="Exclude posts rated 'explicit'.")
    dl.add_argument("--config", help="Path to YAML config file.")
    dl.add_argument(
        "--workers",
        type=int,
        help="Concurrent requests per stage (overrides download.workers).",
    )
    dl.set_defaults(_handler=_cmd_download)

    search = subparsers.add_parser(
        "search",
        aliases=["s"],
        help="Look up tags by name, most used first.",
    )
    search.add_argument("-t", "--term", dest="search_term", required=True, help="The term to search for.")
    search.add_argument("--limit", type=int, help="Maximum number of tags to list.")
    search.add_argument("--config", help="Path to YAML config file.")
    search.set_defaults(_handler=_cmd_search)

    return parser


def _eprint(message: str) -> None:
    print(message, file=sys.stderr)


def _apply_overrides(cfg: AppConfig, args: argparse.Namespace) -> AppConfig:
    workers = getattr(args, "workers", None)
    if workers is None:
        return cfg
    if workers < 0:
        raise ConfigError("--workers must be >= 0")
    return cfg.model_copy(update={"download": cfg.download.model_copy(update={"workers": int(workers)})})


def _cmd_download(args: argparse.Namespace) -> int:
    cfg = _apply_overrides(load_config(args.config), args)
    credentials = resolve_credentials(cfg)

    tags = [t.strip() for t in (args.tags or []) if t and t.strip()]
    if not tags:
        raise ConfigError("At least one non-empty --tag is required")

    excluded = excluded_ratings(
        general=args.general,
        sensitive=args.sensitive,
        questionable=args.questionable,
        explicit=args.explicit,
    )

    requested = Path(args.output)
    output_root = prepare_output_root(requested, cfg.download.fallback_output_dir)
    if output_root != requested:
        _eprint(f"Cannot use {requested}; writing to {output_root} instead")

    log_path = output_root / "run.log"
    with RunLogger.open(log_path, overwrite=True) as log:
        log.info(
            "download_command_started",
            tags=tags,
            output_root=str(output_root),
            excluded=sorted(excluded),
            authenticated=credentials is not None,
        )

        run = RunConfiguration(
            tags=tags,
            output_root=output_root,
            excluded=excluded,
            credentials=credentials,
        )

        try:
            with DanbooruClient.from_config(cfg, credentials=credentials) as client:
                result = run_pipeline(run, client=client, config=cfg, logger=log)
        except KeyboardInterrupt:
            log.warning("download_command_interrupted")
            raise
        except Exception as e:
            log.exception("download_command_failed", exc=e)
            raise

        report = build_run_report(result)
        details = report["details"]

        print(f"status={report['status']}")
        print(f"total_pages={details['total_pages']}")
        print(f"posts_fetched={details['posts_fetched']}")
        print(f"saved={details['saved']}")
        print(f"skipped={details['skipped']}")
        print(f"failed={details['failed']}")
        print(f"output_root={output_root}")
        print(f"run_log={log_path}")

        if result.aborted:
            _eprint(format_run_report(report))
            return 1

        print(format_run_report(report))
        return 0


def _cmd_search(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)
    credentials = resolve_credentials(cfg)

    limit = args.limit if args.limit is not None else cfg.search.limit
    if limit < 1:
        raise ConfigError("--limit must be >= 1")

    try:
        with DanbooruClient.from_config(cfg, credentials=credentials) as client:
            matches = search_tags(client, args.search_term, limit=limit)
    except ValueError as e:
        raise ConfigError(str(e)) from e

    if not matches:
        _eprint(f"No tags found matching: {args.search_term}")
        return 1

    for m in matches:
        print(f"{m.name}\t{m.post_count}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        handler = getattr(args, "_handler")
        return int(handler(args))
    except ConfigError as e:
        _eprint(str(e))
        return 2
    except (DanbooruError, OutputDirectoryError) as e:
        _eprint(str(e))
        return 3
    except KeyboardInterrupt:
        _eprint("Interrupted")
        return 130
    except Exception as e:
        _eprint(f"Unexpected error: {e}")
        return 1
