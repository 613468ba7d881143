from __future__ import annotations

import re
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_ENV_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _validate_env_var_name(value: str) -> str:
    name = (value or "").strip()
    if not _ENV_NAME_RE.fullmatch(name):
        raise ValueError("must be a valid environment variable name")
    return name


PositiveInt = Annotated[int, Field(ge=1)]
NonNegativeInt = Annotated[int, Field(ge=0)]
PositiveFloat = Annotated[float, Field(gt=0)]


class ApiConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    base_url: str = "https://danbooru.donmai.us"
    login_env: str = "LOGIN_NAME"
    api_key_env: str = "API_KEY"
    connect_timeout_seconds: PositiveFloat = 10.0
    read_timeout_seconds: PositiveFloat = 60.0
    transport_retries: NonNegativeInt = 2

    @field_validator("base_url")
    @classmethod
    def _base_url_must_be_http(cls, v: str) -> str:
        url = (v or "").strip().rstrip("/")
        if not url.startswith(("http://", "https://")):
            raise ValueError("must be an http(s) URL")
        return url

    @field_validator("login_env", "api_key_env")
    @classmethod
    def _env_names_must_be_valid(cls, v: str) -> str:
        return _validate_env_var_name(v)

    @model_validator(mode="after")
    def _env_names_must_differ(self) -> "ApiConfig":
        if self.login_env == self.api_key_env:
            raise ValueError("login_env and api_key_env must name different variables")
        return self


class DownloadConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    workers: NonNegativeInt = 0  # 0 means one worker per CPU, capped by max_workers
    max_workers: PositiveInt = 8
    chunk_size: PositiveInt = 64 * 1024
    fallback_output_dir: str = "output"


class SearchConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    limit: Annotated[int, Field(ge=1, le=1000)] = 20


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    api: ApiConfig = Field(default_factory=ApiConfig)
    download: DownloadConfig = Field(default_factory=DownloadConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
