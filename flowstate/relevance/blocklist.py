"""Blocklist pre-filter for page URLs."""

from __future__ import annotations

from typing import Iterable, Optional


def match_blocklist(url: str, blocklist: Iterable[str]) -> Optional[str]:
    """Return the first blocklist entry contained in the URL, or None."""
    lowered = url.lower()
    for entry in blocklist:
        entry = entry.strip().lower()
        if entry and entry in lowered:
            return entry
    return None


def is_blocklisted(url: str, blocklist: Iterable[str]) -> bool:
    return match_blocklist(url, blocklist) is not None
