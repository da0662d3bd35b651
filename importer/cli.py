"""
Command-line entry point.

Usage:
    # Import NDJSON files into the "movies" index
    docimport --url http://localhost:7700 --index movies --files 'data/*.ndjson'

    # Semicolon-separated CSV, 50 MB batches, update instead of replace
    docimport --url http://localhost:7700 --index movies --files movies.csv \\
        --csv-delimiter ';' --batch-size 50MB --upload-operation add-or-update

    # Resume an interrupted run after its first 120 batches
    docimport --config config/config.yaml --skip-batches 120

    # Read from stdin
    cat movies.ndjson | docimport --url ... --index movies --files - --format ndjson
"""
import argparse
import glob
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from tqdm.contrib.logging import logging_redirect_tqdm

from config import ImporterConfig, load_config
from importer import __version__
from importer.core.enums import DataFormat, UploadOperation
from importer.core.exceptions import ConfigError, FileAccessError
from importer.pipeline import ImportPipeline
from importer.readers import STDIN_PATH
from importer.upload import Uploader

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ABORTED = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130

_GLOB_CHARS = set("*?[")
_SUPPORTED_SUFFIXES = {".csv", ".ndjson", ".jsonl", ".json"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docimport",
        description="Import CSV, NDJSON and JSON files into a search-engine index in batches",
    )
    parser.add_argument("--config", type=str, help="YAML config file (flags override its values)")
    parser.add_argument("--url", type=str, help="Base URL of the search engine")
    parser.add_argument("--index", type=str, help="Index receiving the documents")
    parser.add_argument(
        "--files",
        nargs="+",
        metavar="PATH",
        help="Files, directories or glob patterns; '-' reads stdin",
    )
    parser.add_argument("--primary-key", type=str, help="Primary key field of the index")
    parser.add_argument(
        "--api-key", "--token",
        dest="api_key",
        type=str,
        help="API key sent as a Bearer token",
    )
    parser.add_argument(
        "--batch-size",
        type=str,
        help="Max serialized batch size, e.g. 50MB or '20 MiB' (default: 20 MiB)",
    )
    parser.add_argument("--csv-delimiter", type=str, help="CSV field separator (default: ',')")
    parser.add_argument(
        "--skip-batches",
        type=int,
        help="Generate but do not send the first N batches (resume)",
    )
    parser.add_argument(
        "--upload-operation",
        choices=[op.value for op in UploadOperation],
        help="add-or-replace (POST, default) or add-or-update (PUT)",
    )
    parser.add_argument(
        "--format",
        dest="file_format",
        choices=[fmt.value for fmt in DataFormat],
        help="Force the input format instead of detecting it from the extension",
    )
    parser.add_argument(
        "--no-gzip",
        action="store_true",
        help="Send request bodies uncompressed",
    )
    parser.add_argument("--no-progress", action="store_true", help="Hide the progress bar")
    parser.add_argument("--log-level", type=str, help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def config_from_args(args: argparse.Namespace) -> ImporterConfig:
    """Merge CLI flags over the YAML config."""
    overrides = {
        "url": args.url,
        "index": args.index,
        "files": args.files,
        "primary_key": args.primary_key,
        "api_key": args.api_key,
        "batch_size": args.batch_size,
        "csv_delimiter": args.csv_delimiter,
        "skip_batches": args.skip_batches,
        "upload_operation": args.upload_operation,
        "file_format": args.file_format,
        "log_level": args.log_level,
    }
    if args.no_progress:
        overrides["show_progress"] = False

    config = load_config(config_path=args.config, overrides=overrides)
    if args.no_gzip:
        config.http.gzip = False
    return config


def expand_paths(patterns: Sequence[str]) -> list[str]:
    """
    Resolve CLI inputs into an ordered list of files.

    - '-' is kept as is (stdin)
    - directories expand to their supported files, sorted, recursively
    - glob patterns expand to their sorted matches; no match is an error
    - anything else is passed through, so a missing file fails later with context
    """
    resolved: list[str] = []
    for pattern in patterns:
        if pattern == STDIN_PATH:
            resolved.append(pattern)
            continue

        path = Path(pattern)
        if path.is_dir():
            matches = sorted(
                str(p) for p in path.rglob("*")
                if p.is_file() and p.suffix.lower() in _SUPPORTED_SUFFIXES
            )
            if not matches:
                raise FileAccessError(path, "directory contains no .csv, .ndjson, .jsonl or .json files")
            resolved.extend(matches)
        elif _GLOB_CHARS & set(pattern):
            matches = sorted(p for p in glob.glob(pattern, recursive=True) if Path(p).is_file())
            if not matches:
                raise FileAccessError(pattern, "no file matches this pattern")
            resolved.extend(matches)
        else:
            resolved.append(pattern)

    if resolved.count(STDIN_PATH) > 1:
        raise ConfigError("stdin ('-') can only be read once")
    return resolved


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run an import; returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = config_from_args(args)
        files = expand_paths(config.files)
        if not files:
            raise ConfigError("No input files given (use --files or 'files' in the config)")
        if STDIN_PATH in files and config.file_format is None:
            raise ConfigError("Reading stdin requires --format")
    except (ConfigError, FileAccessError) as e:
        print(f"docimport: error: {e}", file=sys.stderr)
        return EXIT_USAGE

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format=config.log_format,
    )

    try:
        with Uploader.from_config(config) as uploader, logging_redirect_tqdm():
            pipeline = ImportPipeline.from_config(config, uploader)
            summary = pipeline.run(files)
    except KeyboardInterrupt:
        logger.warning("Import interrupted by user")
        return EXIT_INTERRUPTED

    print(summary.format())
    return EXIT_OK if summary.succeeded else EXIT_ABORTED


if __name__ == "__main__":
    sys.exit(main())
