from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from ..config import settings

_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")
_WHITESPACE_RE = re.compile(r"\s+")
_NON_DIGIT_RE = re.compile(r"\D")


T = TypeVar("T")


def normalize_text(value: Any) -> str:
    if value is None:
        return ""
    lowered = str(value).lower()
    stripped = _NON_ALNUM_RE.sub("", lowered)
    return _WHITESPACE_RE.sub(" ", stripped).strip()


def phone_suffix(value: Any, digits: int | None = None) -> str:
    """Last N digits of a phone number, or "" when it has fewer than N."""
    count = digits or settings.duplicate_phone_digits
    cleaned = _NON_DIGIT_RE.sub("", str(value or ""))
    if len(cleaned) < count:
        return ""
    return cleaned[-count:]


@dataclass(frozen=True, slots=True)
class DuplicateKey:
    slug: str
    name: str
    address: str
    city: str
    phone: str

    @classmethod
    def from_listing(cls, listing: Any) -> "DuplicateKey":
        return cls(
            slug=str(getattr(listing, "slug", "") or ""),
            name=normalize_text(getattr(listing, "name", "")),
            address=normalize_text(getattr(listing, "address", "")),
            city=normalize_text(getattr(listing, "city", "")),
            phone=phone_suffix(getattr(listing, "phone", "")),
        )

    def matches(self, other: "DuplicateKey") -> bool:
        if not self.name or self.name != other.name:
            return False
        if self.address and self.address == other.address:
            return True
        return bool(self.city) and self.city == other.city and bool(self.phone) and self.phone == other.phone


def match_index(candidate: DuplicateKey, keys: Sequence[DuplicateKey]) -> int | None:
    if candidate.slug:
        for index, key in enumerate(keys):
            if key.slug == candidate.slug:
                return index

    for index, key in enumerate(keys):
        if candidate.matches(key):
            return index
    return None


def find_duplicate(candidate: Any, existing: Iterable[T]) -> T | None:
    """Return the first existing listing that the candidate duplicates.

    An exact slug match wins outright. Otherwise the normalized names must be
    equal and either the normalized addresses match or both the normalized
    city and the trailing phone digits match.
    """
    pool = list(existing)
    index = match_index(DuplicateKey.from_listing(candidate), [DuplicateKey.from_listing(item) for item in pool])
    if index is None:
        return None
    return pool[index]
