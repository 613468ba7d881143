from __future__ import annotations

from .config import Credentials, load_config, resolve_credentials
from .config_schema import AppConfig
from .errors import ConfigError, DanbooruError, NoResultsError, OutputDirectoryError
from .pipeline import PipelineResult, PipelineState, RunConfiguration, run_pipeline
from .post import Post, excluded_ratings
from .tags import encode_tags

__all__ = [
    "AppConfig",
    "ConfigError",
    "Credentials",
    "DanbooruError",
    "NoResultsError",
    "OutputDirectoryError",
    "PipelineResult",
    "PipelineState",
    "Post",
    "RunConfiguration",
    "encode_tags",
    "excluded_ratings",
    "load_config",
    "resolve_credentials",
    "run_pipeline",
]
