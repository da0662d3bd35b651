"""
docimport
=========

Stream CSV, NDJSON and JSON-array files into a search-engine index in
byte-bounded batches, with exponential-backoff retry and a live progress bar.

Modules:
    core/      - Enums and the exception hierarchy
    readers/   - Format-specific document readers
    batching/  - Byte-bounded batching of serialized documents
    upload/    - HTTP uploader and retry policy
    progress/  - Progress bar and ETA
    pipeline   - Orchestrates a run across files
    cli        - Command-line entry point

Usage:
    from config import load_config
    from importer.pipeline import ImportPipeline
    from importer.upload import Uploader

    config = load_config("config/config.yaml")
    with Uploader.from_config(config) as uploader:
        summary = ImportPipeline.from_config(config, uploader).run(config.files)
"""

__version__ = "0.1.0"
__license__ = "MIT"

__all__ = ["__version__"]
