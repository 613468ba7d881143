from __future__ import annotations

from typing import Sequence
from urllib.parse import quote, unquote


def encode_tags(tags: Sequence[str]) -> str:
    """Percent-encode each tag on its own and join them with a literal '+'."""
    return "+".join(quote(tag, safe="") for tag in tags)


def decode_tags(fragment: str) -> list[str]:
    if not fragment:
        return []
    return [unquote(part) for part in fragment.split("+")]
