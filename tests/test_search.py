from __future__ import annotations

import unittest
from typing import Any

from danbooru_dl.search import search_pattern, search_tags


class _FakeTagClient:
    def __init__(self, items: list[dict[str, Any]]) -> None:
        self._items = items
        self.calls: list[tuple[str, int]] = []

    def search_tags(self, term: str, limit: int) -> list[dict[str, Any]]:
        self.calls.append((term, limit))
        return self._items


class TestSearch(unittest.TestCase):
    def test_pattern(self) -> None:
        self.assertEqual(search_pattern("blue"), "blue*")
        self.assertEqual(search_pattern(" blue sky "), "blue_sky*")
        self.assertEqual(search_pattern("*sky"), "*sky")
        with self.assertRaises(ValueError):
            search_pattern("   ")

    def test_search_sorts_by_count(self) -> None:
        client = _FakeTagClient(
            [
                {"name": "blue_eyes", "post_count": 900, "category": 0},
                {"name": "blue_sky", "post_count": 1200, "category": 0},
                {"name": "", "post_count": 5},
                {"name": "blue_archive", "post_count": "oops", "category": 3},
            ]
        )
        matches = search_tags(client, "blue", limit=3)  # type: ignore[arg-type]

        self.assertEqual(client.calls, [("blue*", 3)])
        self.assertEqual([m.name for m in matches], ["blue_sky", "blue_eyes", "blue_archive"])
        self.assertEqual(matches[-1].post_count, 0)
        self.assertEqual(matches[-1].category, 3)


if __name__ == "__main__":
    unittest.main()
