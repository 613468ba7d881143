from __future__ import annotations

import tempfile
import threading
import unittest
from pathlib import Path
from typing import Any, Iterator

import requests

from danbooru_dl.downloader import download_all, download_post, resolve_download
from danbooru_dl.errors import DanbooruError, MissingMediaUrlError
from danbooru_dl.post import Post


def _post(post_id: int = 1, **overrides: Any) -> Post:
    data: dict[str, Any] = {
        "id": post_id,
        "score": 10,
        "rating": "g",
        "file_ext": "jpg",
        "file_url": f"https://cdn.test/original/{post_id}.jpg",
        "large_file_url": f"https://cdn.test/sample/{post_id}.jpg",
    }
    data.update(overrides)
    return Post.model_validate(data)


class _FakeAsset:
    def __init__(self, chunks: list[bytes], *, fail_after: int | None = None) -> None:
        self._chunks = chunks
        self._fail_after = fail_after

    def __enter__(self) -> "_FakeAsset":
        return self

    def __exit__(self, *exc: object) -> None:
        return None

    def iter_content(self, chunk_size: int = 1) -> Iterator[bytes]:
        for i, chunk in enumerate(self._chunks):
            if self._fail_after is not None and i >= self._fail_after:
                raise requests.ConnectionError("connection reset")
            yield chunk


class _FakeAssetClient:
    def __init__(self, *, chunks: list[bytes] | None = None, fail_after: int | None = None, error: Exception | None = None) -> None:
        self._chunks = chunks if chunks is not None else [b"abc", b"def"]
        self._fail_after = fail_after
        self._error = error
        self._lock = threading.Lock()
        self.urls: list[str] = []

    def open_asset(self, url: str, *, post_id: int | None = None) -> _FakeAsset:
        with self._lock:
            self.urls.append(url)
        if self._error is not None:
            raise self._error
        return _FakeAsset(self._chunks, fail_after=self._fail_after)


class TestResolveDownload(unittest.TestCase):
    def test_zip_with_webm_uses_large_file(self) -> None:
        post = _post(
            5,
            file_ext="zip",
            file_url="https://cdn.test/original/5.zip",
            large_file_url="https://cdn.test/sample/sample-5.webm",
        )
        req = resolve_download(post, "/out")

        self.assertEqual(req.extension, "webm")
        self.assertEqual(req.source_url, "https://cdn.test/sample/sample-5.webm")
        self.assertEqual(req.destination, Path("/out/general/10_5.webm"))

    def test_plain_image_uses_file_url(self) -> None:
        req = resolve_download(_post(6), "/out")
        self.assertEqual(req.extension, "jpg")
        self.assertEqual(req.source_url, "https://cdn.test/original/6.jpg")

    def test_zip_without_video_keeps_zip(self) -> None:
        post = _post(7, file_ext="zip", file_url="https://cdn.test/original/7.zip", large_file_url=None)
        req = resolve_download(post, "/out")
        self.assertEqual(req.extension, "zip")
        self.assertEqual(req.source_url, "https://cdn.test/original/7.zip")

    def test_falls_back_to_large_file_url(self) -> None:
        post = _post(8, file_url=None)
        self.assertEqual(resolve_download(post, "/out").source_url, "https://cdn.test/sample/8.jpg")

    def test_no_urls(self) -> None:
        with self.assertRaises(MissingMediaUrlError):
            resolve_download(_post(9, file_url=None, large_file_url=None), "/out")

    def test_rating_folders(self) -> None:
        cases = {
            "g": "general",
            "s": "sensitive",
            "q": "questionable",
            "e": "explicit",
            "z": "unknown",
        }
        for code, folder in cases.items():
            with self.subTest(code=code):
                req = resolve_download(_post(1, rating=code, score=-2), "/out")
                self.assertEqual(req.destination, Path("/out") / folder / "-2_1.jpg")


class TestDownloadPost(unittest.TestCase):
    def test_writes_file_once(self) -> None:
        client = _FakeAssetClient(chunks=[b"abc", b"", b"def"])
        post = _post(1)

        with tempfile.TemporaryDirectory() as td:
            first = download_post(client, post, td)  # type: ignore[arg-type]
            second = download_post(client, post, td)  # type: ignore[arg-type]

            target = Path(td) / "general" / "10_1.jpg"
            self.assertEqual(first.status, "saved")
            self.assertEqual(first.bytes_written, 6)
            self.assertEqual(target.read_bytes(), b"abcdef")
            self.assertEqual(second.status, "skipped")
            self.assertTrue(second.ok)
            self.assertEqual(len(client.urls), 1)
            self.assertEqual(list((Path(td) / "general").iterdir()), [target])

    def test_excluded_rating_is_noop(self) -> None:
        client = _FakeAssetClient()
        with tempfile.TemporaryDirectory() as td:
            outcome = download_post(client, _post(2, rating="e"), td, {"e"})  # type: ignore[arg-type]

            self.assertEqual(outcome.status, "excluded")
            self.assertTrue(outcome.ok)
            self.assertEqual(client.urls, [])
            self.assertFalse((Path(td) / "explicit" / "10_2.jpg").exists())

    def test_missing_url_fails_item(self) -> None:
        client = _FakeAssetClient()
        with tempfile.TemporaryDirectory() as td:
            outcome = download_post(client, _post(3, file_url=None, large_file_url=None), td)  # type: ignore[arg-type]
            self.assertEqual(outcome.status, "failed")
            self.assertEqual(client.urls, [])

    def test_http_failure_leaves_nothing(self) -> None:
        client = _FakeAssetClient(error=DanbooruError("asset download failed: HTTP 404"))
        with tempfile.TemporaryDirectory() as td:
            outcome = download_post(client, _post(4), td)  # type: ignore[arg-type]

            self.assertEqual(outcome.status, "failed")
            self.assertIn("404", outcome.reason or "")
            self.assertEqual(list((Path(td) / "general").iterdir()), [])

    def test_interrupted_stream_is_not_kept(self) -> None:
        client = _FakeAssetClient(chunks=[b"abc", b"def"], fail_after=1)
        with tempfile.TemporaryDirectory() as td:
            outcome = download_post(client, _post(5), td)  # type: ignore[arg-type]
            self.assertEqual(outcome.status, "failed")
            self.assertEqual(list((Path(td) / "general").iterdir()), [])

            retry = download_post(_FakeAssetClient(), _post(5), td)  # type: ignore[arg-type]
            self.assertEqual(retry.status, "saved")

    def test_cancelled(self) -> None:
        cancel = threading.Event()
        cancel.set()
        client = _FakeAssetClient()
        with tempfile.TemporaryDirectory() as td:
            outcome = download_post(client, _post(6), td, cancel=cancel)  # type: ignore[arg-type]
            self.assertEqual(outcome.status, "cancelled")
            self.assertEqual(client.urls, [])


class TestDownloadAll(unittest.TestCase):
    def test_one_failure_does_not_stop_others(self) -> None:
        posts = [_post(1), _post(2, file_url=None, large_file_url=None), _post(3, rating="s")]
        seen: list[int] = []

        with tempfile.TemporaryDirectory() as td:
            summary = download_all(
                _FakeAssetClient(),  # type: ignore[arg-type]
                posts,
                td,
                workers=3,
                on_progress=lambda o: seen.append(o.post_id),
            )

            self.assertEqual(summary.counts["saved"], 2)
            self.assertEqual(summary.counts["failed"], 1)
            self.assertEqual([o.post_id for o in summary.failures], [2])
            self.assertEqual(sorted(seen), [1, 2, 3])
            self.assertTrue((Path(td) / "general" / "10_1.jpg").exists())
            self.assertTrue((Path(td) / "sensitive" / "10_3.jpg").exists())


if __name__ == "__main__":
    unittest.main()
