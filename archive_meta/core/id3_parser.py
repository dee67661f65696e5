"""ID3v2 tag parser -- decodes the few text frames the catalog needs from a
(possibly truncated) prefix of an MP3 file.

Layout handled here::

    offset 0   "ID3"
    offset 3   major version, revision
    offset 5   flags
    offset 6   synchsafe tag size (4 bytes, 7 bits each)
    offset 10  frames: id(4) size(4, synchsafe) flags(2) payload(size)
               ... until padding (NUL bytes) or the end of the tag

The buffer is usually the first ~100 KiB of a remote file, so every read is
bounds-checked against both the declared tag size and the bytes actually
present. A truncated or corrupt tag yields whatever frames were complete
before the damage; nothing in this module raises to the caller.

Extended headers, unsynchronization and compressed frames are not handled.
"""

from __future__ import annotations

from typing import Iterator

from mutagen.id3 import TCON

from archive_meta.models.extracted_metadata import ExtractedMetadata, TagFrame, TagHeader
from archive_meta.utils.constants import (
    ID3_ENCODING_LATIN1,
    ID3_FRAME_ALBUM,
    ID3_FRAME_ARTIST,
    ID3_FRAME_GENRE,
    ID3_FRAME_HEADER_SIZE,
    ID3_FRAME_ID_SIZE,
    ID3_FRAME_TITLE,
    ID3_FRAME_YEAR,
    ID3_HEADER_SIZE,
    ID3_MARKER,
    SYNCHSAFE_MAX,
)
from archive_meta.utils.logger import get_logger

logger = get_logger("core.id3_parser")

_INTERPRETED_FRAMES = frozenset(
    {ID3_FRAME_ARTIST, ID3_FRAME_TITLE, ID3_FRAME_ALBUM, ID3_FRAME_GENRE} | ID3_FRAME_YEAR
)


# ------------------------------------------------------------------
# Synchsafe integers
# ------------------------------------------------------------------


def decode_synchsafe(data: bytes, offset: int = 0) -> int:
    """Decode a 4-byte synchsafe integer starting at *offset*.

    Each byte contributes its low 7 bits, most significant byte first, so
    the result is at most 28 bits wide. Bytes missing past the end of
    *data* count as zero.
    """
    value = 0
    for i in range(4):
        pos = offset + i
        byte = data[pos] if 0 <= pos < len(data) else 0
        value = (value << 7) | (byte & 0x7F)
    return value


def encode_synchsafe(value: int) -> bytes:
    """Encode *value* as 4 synchsafe bytes.

    Raises:
        ValueError: If *value* is outside ``[0, 2**28)``.
    """
    if not 0 <= value < SYNCHSAFE_MAX:
        raise ValueError(f"Synchsafe value out of range: {value}")
    return bytes((value >> shift) & 0x7F for shift in (21, 14, 7, 0))


# ------------------------------------------------------------------
# Header and frames
# ------------------------------------------------------------------


def has_id3_marker(buffer: bytes) -> bool:
    """Cheap check for a complete ID3v2 header at the start of *buffer*."""
    return len(buffer) >= ID3_HEADER_SIZE and buffer[:3] == ID3_MARKER


def parse_header(buffer: bytes) -> TagHeader | None:
    """Parse the 10-byte tag header, or return None if there is no tag."""
    if not has_id3_marker(buffer):
        return None
    return TagHeader(
        version=buffer[3],
        flags=buffer[5],
        declared_size=decode_synchsafe(buffer, 6),
    )


def iter_frames(buffer: bytes, header: TagHeader) -> Iterator[TagFrame]:
    """Yield every complete frame in the tag body.

    Stops at the padding region (a frame id starting with NUL), when the
    next frame header would cross the end of the tag, or when a frame's
    payload runs past the end of the buffer. The frame size is read for
    every frame, interpreted or not, since it is the only way to find the
    next one.
    """
    limit = header.body_end(len(buffer))
    offset = ID3_HEADER_SIZE

    while offset + ID3_FRAME_HEADER_SIZE <= limit:
        if buffer[offset] == 0:
            break

        frame_id = buffer[offset:offset + ID3_FRAME_ID_SIZE].decode("latin-1")
        frame_size = decode_synchsafe(buffer, offset + ID3_FRAME_ID_SIZE)
        payload_start = offset + ID3_FRAME_HEADER_SIZE
        payload_end = payload_start + frame_size

        if payload_end > len(buffer):
            logger.debug(
                "Frame %r at offset %d claims %d bytes, only %d available -- stopping",
                frame_id, offset, frame_size, len(buffer) - payload_start,
            )
            break

        yield TagFrame(frame_id, frame_size, buffer[payload_start:payload_end])
        offset = payload_end


# ------------------------------------------------------------------
# Text decoding
# ------------------------------------------------------------------


def decode_text_frame(payload: bytes) -> str | None:
    """Decode an ID3 text frame payload.

    The first byte selects the encoding: 0 is Latin-1 and any other value is
    read as UTF-16-LE. Encodings 1 (UTF-16 with BOM), 2 (UTF-16BE) and 3
    (UTF-8) are therefore only right when the bytes happen to be
    little-endian UTF-16; UTF-8 frames come out garbled.

    Only the text before the first NUL terminator is returned.
    """
    if len(payload) < 2:
        return None

    encoding = payload[0]
    raw = payload[1:]
    if encoding == ID3_ENCODING_LATIN1:
        text = raw.decode("latin-1")
    else:
        text = raw.decode("utf-16-le", errors="ignore")

    value = text.split("\x00", 1)[0].strip().lstrip("\ufeff").strip()
    return value or None


def _year_prefix(text: str | None) -> str | None:
    if not text:
        return None
    return text.split("-", 1)[0].strip() or None


def _resolve_genre(text: str | None) -> str | None:
    """Expand ID3v1 numeric genre references ("17", "(17)") to names."""
    if not text:
        return None
    genres = TCON(encoding=ID3_ENCODING_LATIN1, text=[text]).genres
    return ", ".join(genres) if genres else text


# ------------------------------------------------------------------
# Public entry point
# ------------------------------------------------------------------


def parse_id3(buffer: bytes) -> ExtractedMetadata:
    """Parse the ID3v2 tag at the start of *buffer*.

    Args:
        buffer: Leading bytes of an MP3 file (may be truncated).

    Returns:
        ExtractedMetadata with ``source=ID3`` and confidence 0.95 when an
        artist or title was decoded, otherwise empty metadata with
        ``source=FALLBACK`` and confidence 0.
    """
    header = parse_header(buffer)
    if header is None:
        return ExtractedMetadata()

    values: dict[str, str | None] = {}
    try:
        for frame in iter_frames(buffer, header):
            if frame.frame_id not in _INTERPRETED_FRAMES:
                continue
            text = decode_text_frame(frame.payload)
            if frame.frame_id == ID3_FRAME_ARTIST:
                values["artist"] = text
            elif frame.frame_id == ID3_FRAME_TITLE:
                values["title"] = text
            elif frame.frame_id == ID3_FRAME_ALBUM:
                values["album"] = text
            elif frame.frame_id == ID3_FRAME_GENRE:
                values["genre"] = _resolve_genre(text)
            else:
                values["year"] = _year_prefix(text)
    except Exception as exc:
        # Keep what was decoded before the damage
        logger.warning("Malformed ID3v2.%d tag, keeping %d fields: %s",
                       header.version, len(values), exc)

    return ExtractedMetadata.from_fields(**values)
