"""Tests for the ID3v2 parser -- header detection, frame scanning, text decoding."""

from __future__ import annotations

import pytest

from archive_meta.core.id3_parser import (
    decode_synchsafe,
    decode_text_frame,
    encode_synchsafe,
    iter_frames,
    parse_header,
    parse_id3,
)
from archive_meta.models.metadata_source import MetadataSource


def make_frame(frame_id: str, text: str, encoding: int = 0) -> bytes:
    if encoding == 0:
        body = text.encode("latin-1") + b"\x00"
    else:
        body = b"\xff\xfe" + text.encode("utf-16-le") + b"\x00\x00"
    payload = bytes([encoding]) + body
    return frame_id.encode("latin-1") + encode_synchsafe(len(payload)) + b"\x00\x00" + payload


def make_tag(*frames: bytes, padding: int = 0, version: int = 4) -> bytes:
    body = b"".join(frames) + b"\x00" * padding
    return b"ID3" + bytes([version, 0, 0]) + encode_synchsafe(len(body)) + body


# ------------------------------------------------------------------
# Synchsafe integers
# ------------------------------------------------------------------


class TestSynchsafe:
    @pytest.mark.parametrize("value", [0, 1, 127, 128, 257, 16383, 16384, 102400, 2**21, 2**28 - 1])
    def test_round_trip(self, value: int):
        assert decode_synchsafe(encode_synchsafe(value)) == value

    def test_encoded_bytes_have_high_bit_clear(self):
        assert all(b < 0x80 for b in encode_synchsafe(2**28 - 1))

    def test_known_encoding(self):
        assert encode_synchsafe(257) == b"\x00\x00\x02\x01"
        assert decode_synchsafe(b"\x00\x00\x02\x01") == 257

    def test_high_bits_ignored_on_decode(self):
        assert decode_synchsafe(b"\xff\xff\xff\xff") == 2**28 - 1

    def test_decode_at_offset(self):
        assert decode_synchsafe(b"xx\x00\x00\x01\x00", offset=2) == 128

    def test_missing_bytes_count_as_zero(self):
        assert decode_synchsafe(b"\x01", offset=0) == 1 << 21

    @pytest.mark.parametrize("value", [-1, 2**28, 2**32])
    def test_encode_out_of_range(self, value: int):
        with pytest.raises(ValueError):
            encode_synchsafe(value)


# ------------------------------------------------------------------
# Header
# ------------------------------------------------------------------


class TestParseHeader:
    def test_header_fields(self):
        tag = make_tag(make_frame("TPE1", "Daft Punk"), version=3)
        header = parse_header(tag)
        assert header is not None
        assert header.version == 3
        assert header.declared_size == len(tag) - 10

    def test_body_end_clamped_to_buffer(self):
        header = parse_header(b"ID3\x04\x00\x00" + encode_synchsafe(5000))
        assert header.body_end(10) == 10

    @pytest.mark.parametrize("buffer", [b"", b"ID3", b"ID3\x04\x00\x00\x00\x00\x00", b"RIFF\x00\x00\x00\x00WAVE"])
    def test_no_header(self, buffer: bytes):
        assert parse_header(buffer) is None


# ------------------------------------------------------------------
# Text frames
# ------------------------------------------------------------------


class TestDecodeTextFrame:
    def test_latin1(self):
        assert decode_text_frame(b"\x00Daft Punk\x00") == "Daft Punk"

    def test_latin1_high_characters(self):
        assert decode_text_frame(b"\x00Bj\xf6rk") == "Björk"

    def test_utf16_with_bom(self):
        payload = b"\x01\xff\xfe" + "Sigur Rós".encode("utf-16-le") + b"\x00\x00"
        assert decode_text_frame(payload) == "Sigur Rós"

    def test_only_text_before_terminator(self):
        assert decode_text_frame(b"\x00First\x00Second") == "First"

    def test_whitespace_trimmed(self):
        assert decode_text_frame(b"\x00  Air  \x00") == "Air"

    def test_too_short(self):
        assert decode_text_frame(b"") is None
        assert decode_text_frame(b"\x00") is None

    def test_empty_value(self):
        assert decode_text_frame(b"\x00\x00\x00") is None


# ------------------------------------------------------------------
# Full parse
# ------------------------------------------------------------------


class TestParseId3:
    @pytest.mark.parametrize("buffer", [b"", b"ID3\x04", b"ID3\x04\x00\x00\x00\x00\x00", b"\xff\xfb\x90\x64" * 8])
    def test_untagged_buffers_yield_empty_metadata(self, buffer: bytes):
        meta = parse_id3(buffer)
        assert (meta.artist, meta.title, meta.album, meta.genre, meta.year) == (None,) * 5
        assert meta.source is MetadataSource.FALLBACK
        assert meta.confidence == 0.0

    def test_artist_frame(self):
        meta = parse_id3(make_tag(make_frame("TPE1", "Daft Punk")))
        assert meta.artist == "Daft Punk"
        assert meta.source is MetadataSource.ID3
        assert meta.confidence == 0.95

    def test_all_interpreted_frames(self):
        tag = make_tag(
            make_frame("TPE1", "Daft Punk"),
            make_frame("TIT2", "One More Time"),
            make_frame("TALB", "Discovery"),
            make_frame("TCON", "Electronic"),
            make_frame("TDRC", "2001-03-12"),
        )
        meta = parse_id3(tag)
        assert meta.artist == "Daft Punk"
        assert meta.title == "One More Time"
        assert meta.album == "Discovery"
        assert meta.genre == "Electronic"
        assert meta.year == "2001"

    def test_tyer_year(self):
        meta = parse_id3(make_tag(make_frame("TIT2", "Track"), make_frame("TYER", "1999"), version=3))
        assert meta.year == "1999"

    def test_numeric_genre_resolved(self):
        meta = parse_id3(make_tag(make_frame("TIT2", "Track"), make_frame("TCON", "(17)")))
        assert meta.genre == "Rock"

    def test_multiple_numeric_genres(self):
        meta = parse_id3(make_tag(make_frame("TIT2", "Track"), make_frame("TCON", "(17)(13)")))
        assert meta.genre == "Rock, Pop"

    def test_utf16_frames(self):
        tag = make_tag(make_frame("TPE1", "Sigur Rós", encoding=1), make_frame("TIT2", "Hoppípolla", encoding=1))
        meta = parse_id3(tag)
        assert meta.artist == "Sigur Rós"
        assert meta.title == "Hoppípolla"

    def test_unknown_frames_skipped_by_size(self):
        tag = make_tag(
            make_frame("TXXX", "some user text that is not interpreted"),
            make_frame("COMM", "a comment"),
            make_frame("TPE1", "Air"),
        )
        assert parse_id3(tag).artist == "Air"

    def test_padding_stops_scan(self):
        tag = make_tag(make_frame("TPE1", "Air"), padding=64)
        frames = list(iter_frames(tag, parse_header(tag)))
        assert [f.frame_id for f in frames] == ["TPE1"]

    def test_frames_after_padding_ignored(self):
        body = make_frame("TPE1", "Air") + b"\x00" * 10 + make_frame("TIT2", "Hidden")
        tag = b"ID3\x04\x00\x00" + encode_synchsafe(len(body)) + body
        meta = parse_id3(tag)
        assert meta.artist == "Air"
        assert meta.title is None

    def test_truncated_frame_keeps_earlier_frames(self):
        tag = make_tag(make_frame("TPE1", "Daft Punk"), make_frame("TIT2", "One More Time"))
        # Cut in the middle of the TIT2 payload
        truncated = tag[: len(tag) - 5]
        meta = parse_id3(truncated)
        assert meta.artist == "Daft Punk"
        assert meta.title is None

    def test_frame_size_past_buffer_end(self):
        bogus = b"TIT2" + encode_synchsafe(100000) + b"\x00\x00" + b"\x00short"
        body = make_frame("TPE1", "Daft Punk") + bogus
        tag = b"ID3\x04\x00\x00" + encode_synchsafe(len(body)) + body
        meta = parse_id3(tag)
        assert meta.artist == "Daft Punk"
        assert meta.title is None

    def test_declared_size_larger_than_buffer(self):
        frames = make_frame("TPE1", "Daft Punk") + make_frame("TIT2", "Aerodynamic")
        tag = b"ID3\x04\x00\x00" + encode_synchsafe(500000) + frames
        meta = parse_id3(tag)
        assert meta.artist == "Daft Punk"
        assert meta.title == "Aerodynamic"

    def test_declared_size_smaller_than_frames(self):
        first = make_frame("TPE1", "Daft Punk")
        frames = first + make_frame("TIT2", "Outside The Tag")
        tag = b"ID3\x04\x00\x00" + encode_synchsafe(len(first)) + frames
        meta = parse_id3(tag)
        assert meta.artist == "Daft Punk"
        assert meta.title is None

    def test_album_only_is_not_identity(self):
        meta = parse_id3(make_tag(make_frame("TALB", "Discovery")))
        assert meta.album == "Discovery"
        assert meta.source is MetadataSource.FALLBACK
        assert meta.confidence == 0.0

    def test_garbage_after_marker_never_raises(self):
        junk = b"ID3\x04\x00\x00\x7f\x7f\x7f\x7f" + bytes(range(256)) * 4
        meta = parse_id3(junk)
        assert meta.source in (MetadataSource.ID3, MetadataSource.FALLBACK)
