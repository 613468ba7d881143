from __future__ import annotations

import unittest

from danbooru_dl.tags import decode_tags, encode_tags


class TestEncodeTags(unittest.TestCase):
    def test_joins_with_plus(self) -> None:
        self.assertEqual(encode_tags(["blue_sky", "cloud"]), "blue_sky+cloud")

    def test_encodes_each_tag(self) -> None:
        self.assertEqual(encode_tags(["a b", "c+d", "x/y"]), "a%20b+c%2Bd+x%2Fy")

    def test_encodes_unicode(self) -> None:
        self.assertEqual(encode_tags(["東方"]), "%E6%9D%B1%E6%96%B9")

    def test_keeps_order_and_duplicates(self) -> None:
        self.assertEqual(encode_tags(["b", "a", "b"]), "b+a+b")

    def test_round_trip(self) -> None:
        samples = [
            ["blue_sky"],
            ["1girl", "solo", "rating:g"],
            ["with space", "plus+sign", "pct%20", "amp&q=1"],
            ["東方", "ünïcödé", "emoji_🙂"],
            ["score:>100", "order:score", "-animated"],
        ]
        for tags in samples:
            with self.subTest(tags=tags):
                self.assertEqual(decode_tags(encode_tags(tags)), tags)

    def test_decode_empty(self) -> None:
        self.assertEqual(decode_tags(""), [])


if __name__ == "__main__":
    unittest.main()
