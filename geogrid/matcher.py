"""Locate a target business inside a provider result list."""
from __future__ import annotations

from typing import Iterable, List, Optional, Tuple

from .models import SearchResultItem

MIN_TOKEN_LENGTH = 4


def name_tokens(business_name: str) -> List[str]:
    return [w for w in business_name.lower().split() if len(w) >= MIN_TOKEN_LENGTH]


def match_business(items: Iterable[SearchResultItem], business_name: str) -> Optional[int]:
    """Return the position of the business, or None when it is not listed.

    Pass 1 looks for the full name inside a title (case-insensitive); pass 2
    accepts any name word longer than three characters found inside a title.
    Both passes scan in position order so the best listing wins.
    """
    target = (business_name or "").strip().lower()
    if not target:
        return None
    ordered = sorted(items, key=lambda it: it.position)

    for item in ordered:
        if target in (item.title or "").lower():
            return item.position

    tokens = name_tokens(target)
    if not tokens:
        return None
    for item in ordered:
        title = (item.title or "").lower()
        if any(token in title for token in tokens):
            return item.position
    return None


def competitors_above(
    items: Iterable[SearchResultItem],
    rank: Optional[int],
    limit: int = 3,
) -> Tuple[str, ...]:
    """Titles of the listings ahead of `rank`, best first.

    With rank None (business not listed) the top `limit` titles are returned.
    """
    titles = []
    for item in sorted(items, key=lambda it: it.position):
        if rank is not None and item.position >= rank:
            break
        title = (item.title or "").strip()
        if title and title not in titles:
            titles.append(title)
        if len(titles) >= limit:
            break
    return tuple(titles)
