from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version
from typing import Any, Iterable
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import Credentials
from .config_schema import AppConfig
from .errors import DanbooruError
from .post import POST_FIELDS

DEFAULT_BASE_URL = "https://danbooru.donmai.us"

# Page size of both the HTML listing and posts.json; the page count scraped
# from the listing is only valid for the JSON pages if the two agree.
PAGE_LIMIT = 200

HTML_ACCEPT = "text/html"
JSON_ACCEPT = "application/json"


def _pkg_version(name: str) -> str:
    try:
        return version(name)
    except PackageNotFoundError:
        return "unknown"


def default_user_agent() -> str:
    return f"danbooru-dl/{_pkg_version('danbooru-dl')}"


def _encode_pair(key: str, value: object) -> str:
    return f"{quote(key, safe='[]')}={quote(str(value), safe=',*')}"


def _build_session(*, user_agent: str, retries: int) -> requests.Session:
    session = requests.Session()
    session.headers.update({"User-Agent": user_agent})

    if retries > 0:
        # Transport-level retries only; no request pacing on top of urllib3.
        retry = Retry(
            total=retries,
            connect=retries,
            read=retries,
            status=retries,
            status_forcelist=(502, 503, 504),
            allowed_methods=frozenset({"GET"}),
            backoff_factor=0.5,
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry, pool_maxsize=32)
        session.mount("https://", adapter)
        session.mount("http://", adapter)

    return session


class DanbooruClient:
    """
    Thin wrapper around a requests session for the three read-only Danbooru endpoints
    the downloader needs, plus raw asset streaming.

    Tags are passed in already encoded (see tags.encode_tags) and are placed into
    the query string verbatim so the '+' separators survive.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        credentials: Credentials | None = None,
        session: requests.Session | None = None,
        timeout: float | tuple[float, float] = (10.0, 60.0),
        retries: int = 2,
        user_agent: str | None = None,
    ) -> None:
        self._base_url = (base_url or DEFAULT_BASE_URL).strip().rstrip("/")
        self._credentials = credentials
        self._timeout = timeout
        self._owns_session = session is None

        if session is not None:
            self._session = session
        else:
            self._session = _build_session(
                user_agent=user_agent or default_user_agent(),
                retries=int(retries),
            )

    @classmethod
    def from_config(
        cls, config: AppConfig, *, credentials: Credentials | None = None
    ) -> "DanbooruClient":
        api = config.api
        return cls(
            api.base_url,
            credentials=credentials,
            timeout=(api.connect_timeout_seconds, api.read_timeout_seconds),
            retries=api.transport_retries,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def close(self) -> None:
        if self._owns_session:
            self._session.close()

    def __enter__(self) -> "DanbooruClient":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def _url(self, path: str, pairs: Iterable[tuple[str, object]], *, tags: str | None = None) -> str:
        parts: list[str] = []
        for key, value in pairs:
            if key == "tags":
                parts.append(f"tags={tags or ''}")
            else:
                parts.append(_encode_pair(key, value))

        if self._credentials is not None:
            parts.extend(_encode_pair(k, v) for k, v in self._credentials.as_params().items())

        return f"{self._base_url}{path}?{'&'.join(parts)}"

    def listing_url(self, encoded_tags: str) -> str:
        return self._url("/posts", [("tags", None), ("limit", PAGE_LIMIT)], tags=encoded_tags)

    def posts_json_url(self, encoded_tags: str, page: int) -> str:
        return self._url(
            "/posts.json",
            [
                ("page", int(page)),
                ("tags", None),
                ("limit", PAGE_LIMIT),
                ("only", ",".join(POST_FIELDS)),
            ],
            tags=encoded_tags,
        )

    def tags_json_url(self, term: str, limit: int) -> str:
        return self._url(
            "/tags.json",
            [
                ("search[name_matches]", term),
                ("search[order]", "count"),
                ("limit", int(limit)),
            ],
        )

    def _get(self, url: str, *, accept: str | None, operation: str, stream: bool = False) -> requests.Response:
        headers = {"Accept": accept} if accept else None
        try:
            resp = self._session.get(url, headers=headers, timeout=self._timeout, stream=stream)
        except requests.RequestException as e:
            raise DanbooruError(f"{operation} failed: {e}") from e

        if resp.status_code >= 400:
            status = resp.status_code
            resp.close()
            raise DanbooruError(f"{operation} failed: HTTP {status}")

        return resp

    def fetch_listing_html(self, encoded_tags: str) -> str:
        op = f"listing page for tags={encoded_tags}"
        resp = self._get(self.listing_url(encoded_tags), accept=HTML_ACCEPT, operation=op)
        try:
            return resp.content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DanbooruError(f"{op} failed: body is not valid UTF-8") from e

    def fetch_posts_page(self, encoded_tags: str, page: int) -> Any:
        op = f"posts.json page={page} for tags={encoded_tags}"
        resp = self._get(self.posts_json_url(encoded_tags, page), accept=JSON_ACCEPT, operation=op)
        try:
            return resp.json()
        except ValueError as e:
            raise DanbooruError(f"{op} failed: body is not valid JSON") from e

    def search_tags(self, term: str, limit: int) -> list[dict[str, Any]]:
        op = f"tags.json search={term!r}"
        resp = self._get(self.tags_json_url(term, limit), accept=JSON_ACCEPT, operation=op)
        try:
            data = resp.json()
        except ValueError as e:
            raise DanbooruError(f"{op} failed: body is not valid JSON") from e

        if not isinstance(data, list):
            raise DanbooruError(f"{op} failed: expected a JSON array")
        return [item for item in data if isinstance(item, dict)]

    def open_asset(self, url: str, *, post_id: int | None = None) -> requests.Response:
        """Open a streaming GET for a media asset; the caller closes the response."""
        op = f"asset download post_id={post_id}" if post_id is not None else "asset download"
        return self._get(url, accept=None, operation=op, stream=True)
