"""Artist name normalization and deduplication.

Raw artist strings from tags and filenames arrive in many spellings
("daft punk", "Daft Punk feat. Pharrell", "DAFT  PUNK"). The normalizer
reduces them to one canonical, title-cased primary artist and memoizes the
result in an :class:`ArtistCache`, so every later spelling that sanitizes
to the same key gets the same canonical name.

The cache is an explicit object owned by whoever runs the batch; it grows
until ``clear()`` is called at a run boundary.
"""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass, field
from itertools import combinations

from rapidfuzz import fuzz

from archive_meta.utils.constants import (
    ARTIST_CONJUNCTIONS,
    DUPLICATE_ARTIST_THRESHOLD,
    FALLBACK_CONFIDENCE,
    NORMALIZER_CONFIDENCE,
    UNKNOWN_ARTIST,
)
from archive_meta.utils.logger import get_logger

logger = get_logger("core.artist_normalizer")

_WHITESPACE_RE = re.compile(r"\s+")
_DISALLOWED_CHARS_RE = re.compile(r"[^\w\s&()]")
_TOKEN_SPLIT_RE = re.compile(r"(\s+)")

# Featuring markers, applied to the sanitized name (dots already removed):
#   "Artist (feat Other)", "Artist feat Other", "Artist ft Other",
#   "Artist featuring Other", "Artist f Other", "Artist & Other"
_FEATURING_RE = re.compile(
    r"\s*\(\s*(?:featuring|feat|ft)\b.*$"
    r"|\s+(?:featuring|feat|ft|f)\b\.?\s.*$"
    r"|\s+&.*$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class NormalizedArtist:
    name: str
    confidence: float


@dataclass
class CanonicalArtistEntry:
    """Cached canonical form for one sanitized artist key.

    Attributes:
        canonical: Title-cased primary artist name.
        variants: Every raw or sanitized spelling seen for this key.
        confidence: Confidence assigned to the canonical form.
    """

    canonical: str
    variants: set[str] = field(default_factory=set)
    confidence: float = NORMALIZER_CONFIDENCE


class ArtistCache:
    """Thread-safe map of sanitized artist key -> CanonicalArtistEntry.

    Concurrent workers may compute the same entry twice; the later ``put``
    wins and their variant sets are merged.
    """

    def __init__(self) -> None:
        self._entries: dict[str, CanonicalArtistEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def lookup(self, key: str, variant: str | None = None) -> CanonicalArtistEntry | None:
        """Return the entry for *key*, recording *variant* as a seen spelling."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and variant:
                entry.variants.add(variant)
            return entry

    def put(self, key: str, entry: CanonicalArtistEntry) -> CanonicalArtistEntry:
        with self._lock:
            existing = self._entries.get(key)
            if existing is not None:
                entry.variants |= existing.variants
            self._entries[key] = entry
            return entry

    def get(self, key: str) -> CanonicalArtistEntry | None:
        with self._lock:
            return self._entries.get(key)

    def clear(self) -> int:
        """Drop every entry. Returns how many were removed."""
        with self._lock:
            removed = len(self._entries)
            self._entries.clear()
        if removed:
            logger.info("Artist cache cleared (%d entries)", removed)
        return removed

    def canonical_names(self) -> list[str]:
        with self._lock:
            return sorted({e.canonical for e in self._entries.values()})

    def similar_canonicals(
        self,
        threshold: float = DUPLICATE_ARTIST_THRESHOLD,
    ) -> list[tuple[str, str, float]]:
        """Find distinct canonical names that are probably the same artist.

        This only reports; entries are never merged automatically.

        Args:
            threshold: Minimum rapidfuzz ``token_sort_ratio`` (0-100).

        Returns:
            ``(name_a, name_b, score)`` tuples, highest score first.
        """
        names = self.canonical_names()
        pairs = []
        for a, b in combinations(names, 2):
            score = fuzz.token_sort_ratio(a.lower(), b.lower())
            if score >= threshold:
                pairs.append((a, b, score))
        pairs.sort(key=lambda p: p[2], reverse=True)
        return pairs


def sanitize_artist_name(name: str) -> str:
    """Trim, collapse whitespace, and drop characters outside
    word characters, spaces, ``&`` and parentheses."""
    collapsed = _WHITESPACE_RE.sub(" ", name.strip())
    return _DISALLOWED_CHARS_RE.sub("", collapsed).strip()


def extract_primary_artist(name: str) -> str:
    """Return the part of *name* before the first featuring marker."""
    match = _FEATURING_RE.search(name)
    if match:
        primary = name[:match.start()].strip()
        if primary:
            return primary
    return name


def title_case_artist(name: str) -> str:
    """Capitalize each word, keep whitespace runs as-is, and lower-case
    conjunctions that are not the first word."""
    tokens = _TOKEN_SPLIT_RE.split(name)
    out = []
    for i, token in enumerate(tokens):
        if i % 2 == 1 or not token:
            out.append(token)
        elif i > 0 and token.lower() in ARTIST_CONJUNCTIONS:
            out.append(token.lower())
        else:
            out.append(token[0].upper() + token[1:].lower())
    return "".join(out)


class ArtistNormalizer:
    """Maps raw artist strings to canonical names, memoized in a cache.

    Usage:
        normalizer = ArtistNormalizer()
        normalizer.normalize("Daft Punk feat. Pharrell")
        # NormalizedArtist(name='Daft Punk', confidence=0.8)
    """

    def __init__(self, cache: ArtistCache | None = None) -> None:
        self._cache = cache if cache is not None else ArtistCache()

    @property
    def cache(self) -> ArtistCache:
        return self._cache

    def normalize(self, raw: str | None) -> NormalizedArtist:
        if not raw or raw == UNKNOWN_ARTIST:
            return NormalizedArtist(UNKNOWN_ARTIST, FALLBACK_CONFIDENCE)

        sanitized = sanitize_artist_name(raw)
        if not sanitized:
            return NormalizedArtist(UNKNOWN_ARTIST, FALLBACK_CONFIDENCE)

        key = sanitized.casefold()
        cached = self._cache.lookup(key, variant=raw)
        if cached is not None:
            return NormalizedArtist(cached.canonical, cached.confidence)

        canonical = title_case_artist(extract_primary_artist(sanitized))
        self._cache.put(
            key,
            CanonicalArtistEntry(
                canonical=canonical,
                variants={sanitized, raw},
                confidence=NORMALIZER_CONFIDENCE,
            ),
        )
        logger.debug("Canonical artist %r <- %r", canonical, raw)
        return NormalizedArtist(canonical, NORMALIZER_CONFIDENCE)

    def canonical_name(self, raw: str | None) -> str:
        return self.normalize(raw).name

    def clear_cache(self) -> int:
        return self._cache.clear()
