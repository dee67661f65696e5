"""Display title formatting: ``[Artist - Title] / file.mp3``."""

from __future__ import annotations

import re

# One separator after a leading artist name: "-", en dash, em dash or ":"
_LEADING_SEPARATOR_RE = re.compile(r"^\s*[-–—:]?\s*")


def strip_artist_prefix(title: str, artist: str) -> str:
    """Remove a leading *artist* (case-insensitive) and one separator from
    *title*. Returns the title unchanged if that would leave nothing."""
    if not artist or not title.lower().startswith(artist.lower()):
        return title

    remainder = _LEADING_SEPARATOR_RE.sub("", title[len(artist):], count=1).strip()
    return remainder or title


def format_track_title(
    artist: str,
    old_title: str,
    filename: str,
    include_filename: bool = True,
) -> str:
    """Build the canonical display title.

    Args:
        artist: Final (usually canonical) artist name.
        old_title: Title before formatting; may already start with the artist.
        filename: MP3 file name, appended when *include_filename* is set.
        include_filename: Append ``" / filename"`` and bracket the rest.

    Returns:
        ``"[artist - title] / filename"`` or ``"artist - title"``.
    """
    clean_title = strip_artist_prefix(old_title or "", artist)
    if include_filename:
        return f"[{artist} - {clean_title}] / {filename}"
    return f"{artist} - {clean_title}"
