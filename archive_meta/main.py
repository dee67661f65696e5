"""Archive Meta -- entry point: load config, run one extraction batch, report."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

import yaml

from archive_meta.utils.constants import (
    APP_NAME,
    APP_VERSION,
    DEFAULT_CONFIG_FILENAME,
    DEFAULT_PERSIST_BATCH_SIZE,
    DEFAULT_PREFIX_BYTES,
    FETCH_TIMEOUT_SECONDS,
    ID3_HEADER_SIZE,
    MAX_PREFIX_BYTES,
    MAX_WORKERS_LIMIT,
)
from archive_meta.utils.logger import get_logger, set_level, setup_logger

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / DEFAULT_CONFIG_FILENAME

_BOOL_KEYS = ("extract_id3", "normalize_artists", "format_titles", "clear_cache_after_run")


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_config(config: dict) -> list[str]:
    """Validate configuration values and return a list of warnings.

    Invalid values are replaced in *config* by their defaults (or clamped)
    so the caller can always build an ``AppConfig`` afterwards.

    Checks:
    - fetch_max_bytes is an int between the ID3 header size and the cap
    - fetch_timeout_seconds is a positive number
    - fetch_rate_limit is a non-negative number
    - persist_batch_size is a positive int
    - max_workers is an int between 1 and the worker limit
    - stage switches are booleans

    Args:
        config: Configuration dictionary.

    Returns:
        List of human-readable warning strings. Empty if all checks pass.
    """
    warnings: list[str] = []

    if "fetch_max_bytes" in config:
        value = config["fetch_max_bytes"]
        if not _is_int(value) or value < ID3_HEADER_SIZE:
            warnings.append(
                f"fetch_max_bytes must be an integer >= {ID3_HEADER_SIZE}, got {value!r}. "
                f"Using default ({DEFAULT_PREFIX_BYTES})."
            )
            config["fetch_max_bytes"] = DEFAULT_PREFIX_BYTES
        elif value > MAX_PREFIX_BYTES:
            warnings.append(
                f"fetch_max_bytes {value} exceeds {MAX_PREFIX_BYTES}. Clamping."
            )
            config["fetch_max_bytes"] = MAX_PREFIX_BYTES

    if "fetch_timeout_seconds" in config:
        value = config["fetch_timeout_seconds"]
        if not _is_number(value) or value <= 0:
            warnings.append(
                f"fetch_timeout_seconds must be > 0, got {value!r}. "
                f"Using default ({FETCH_TIMEOUT_SECONDS})."
            )
            config["fetch_timeout_seconds"] = FETCH_TIMEOUT_SECONDS

    if "fetch_rate_limit" in config:
        value = config["fetch_rate_limit"]
        if not _is_number(value) or value < 0:
            warnings.append(f"fetch_rate_limit must be >= 0, got {value!r}. Disabling.")
            config["fetch_rate_limit"] = 0.0

    if "persist_batch_size" in config:
        value = config["persist_batch_size"]
        if not _is_int(value) or value < 1:
            warnings.append(
                f"persist_batch_size must be a positive integer, got {value!r}. "
                f"Using default ({DEFAULT_PERSIST_BATCH_SIZE})."
            )
            config["persist_batch_size"] = DEFAULT_PERSIST_BATCH_SIZE

    if "max_workers" in config:
        value = config["max_workers"]
        if not _is_int(value) or value < 1:
            warnings.append(f"max_workers must be a positive integer, got {value!r}. Using 1.")
            config["max_workers"] = 1
        elif value > MAX_WORKERS_LIMIT:
            warnings.append(f"max_workers {value} exceeds {MAX_WORKERS_LIMIT}. Clamping.")
            config["max_workers"] = MAX_WORKERS_LIMIT

    for key in _BOOL_KEYS:
        if key in config and not isinstance(config[key], bool):
            warnings.append(f"{key} must be true or false, got {config[key]!r}. Using true.")
            config[key] = True

    return warnings


def load_config(path: Path | str | None = None) -> dict:
    """Load configuration from a YAML file.

    Args:
        path: Config file; defaults to ``config/config.yaml`` next to the
            package. A missing file yields an empty dict (all defaults).

    Returns:
        Configuration dictionary (suitable for ``AppConfig.from_dict()``).

    Raises:
        ValueError: If the file does not contain a YAML mapping.
    """
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    if not config_path.exists():
        return {}

    with open(config_path, encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}
    if not isinstance(config, dict):
        raise ValueError(f"{config_path} must contain a mapping, got {type(config).__name__}")
    return config


def load_tracks(path: Path | str) -> list[dict]:
    """Read a JSON list of track descriptors (as written by the scraper)."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict) and "tracks" in data:
        data = data["tracks"]
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a JSON list of tracks")
    return data


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="archive-meta",
        description="Extract, normalize and store metadata for archived MP3 tracks.",
    )
    parser.add_argument("tracks_file", help="JSON file with a list of track descriptors")
    parser.add_argument("--config", help="YAML config file (default: config/config.yaml)")
    parser.add_argument("--no-id3", action="store_true", help="skip fetching ID3 tags")
    parser.add_argument("--no-normalize", action="store_true", help="keep artist names as-is")
    parser.add_argument("--no-format", action="store_true", help="keep titles as-is")
    parser.add_argument("--batch-size", type=int, help="records per upsert chunk")
    parser.add_argument("--workers", type=int, help="tracks processed in parallel")
    parser.add_argument("--db", help="SQLite database path")
    parser.add_argument(
        "--dry-run", action="store_true",
        help="process and print records as JSON without writing to the database",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Command-line entry point. Returns the process exit code."""
    from archive_meta.core.artist_normalizer import ArtistNormalizer
    from archive_meta.core.batch_processor import BatchOptions, BatchProcessor
    from archive_meta.core.id3_extractor import ID3Extractor
    from archive_meta.core.prefix_fetcher import PrefixFetcher
    from archive_meta.db.database import Database
    from archive_meta.db.repositories import ProcessingRunRepository, TrackRepository
    from archive_meta.models.config import AppConfig

    args = build_parser().parse_args(argv)

    raw_config = load_config(args.config)
    overrides = {
        "persist_batch_size": args.batch_size,
        "max_workers": args.workers,
        "db_path": args.db,
    }
    raw_config.update({k: v for k, v in overrides.items() if v is not None})
    config_warnings = validate_config(raw_config)
    config = AppConfig.from_dict(raw_config)

    setup_logger(log_level=config.log_level, log_file=config.log_file)
    if args.verbose:
        set_level("DEBUG")
    logger = get_logger("main")
    logger.info("%s v%s starting", APP_NAME, APP_VERSION)
    for warning in config_warnings:
        logger.warning("Config: %s", warning)

    try:
        tracks = load_tracks(args.tracks_file)
    except (OSError, ValueError) as e:
        logger.error("Could not read tracks from %s: %s", args.tracks_file, e)
        return 2

    options = BatchOptions(
        extract_id3=config.extract_id3 and not args.no_id3,
        normalize_artists=config.normalize_artists and not args.no_normalize,
        format_titles=config.format_titles and not args.no_format,
    )
    extractor = ID3Extractor(
        PrefixFetcher(
            max_bytes=config.fetch_max_bytes,
            timeout=config.fetch_timeout_seconds,
            rate_limit=config.fetch_rate_limit,
        )
    )

    if args.dry_run:
        processor = BatchProcessor(
            extractor=extractor,
            normalizer=ArtistNormalizer(),
            max_workers=config.max_workers,
        )
        try:
            records = processor.process_batch(tracks, options)
        finally:
            extractor.close()
        for name_a, name_b, score in processor.normalizer.cache.similar_canonicals():
            logger.info("Possible duplicate artists: %r / %r (%.0f)", name_a, name_b, score)
        json.dump([r.as_dict() for r in records], sys.stdout, indent=2, ensure_ascii=False)
        sys.stdout.write("\n")
        return 0

    with Database(config.db_path_resolved) as db:
        track_repo = TrackRepository(db.connection)
        run_repo = ProcessingRunRepository(db.connection)
        processor = BatchProcessor(
            extractor=extractor,
            normalizer=ArtistNormalizer(),
            store=track_repo,
            max_workers=config.max_workers,
            clear_cache_after_run=config.clear_cache_after_run,
        )

        run_id = run_repo.start_run(Path(args.tracks_file).name, len(tracks))
        result = None
        try:
            result = processor.run(tracks, options, batch_size=config.persist_batch_size)
        finally:
            extractor.close()
            # A run that raised still gets closed, with nothing saved
            saved = result.persist.saved if result is not None else 0
            failed = len(result.persist.errors) if result is not None else 0
            run_repo.complete_run(run_id, saved, failed)

        logger.info(
            "Saved %d/%d tracks (%d from ID3, %d from filename, %d fallback, %d skipped); "
            "%d tracks in database",
            result.persist.saved, result.stats.total, result.stats.from_id3,
            result.stats.from_filename, result.stats.fallback, result.persist.skipped,
            track_repo.count(),
        )
        for error in result.persist.errors:
            logger.error("%s", error)

    return 1 if result.persist.errors else 0


if __name__ == "__main__":
    sys.exit(main())
