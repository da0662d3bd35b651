"""
Import Pipeline
===============

Drives reader -> batcher -> uploader for every input file, in order.

Run states:
    INIT -> READING -> BATCHING <-> UPLOADING -> COMPLETED
    any non-terminal state -> ABORTED

Resuming with ``skip_batches=K``: batches are numbered globally across all
files in the order given. The first K are still read and batched, so later
boundaries come out identical, but they are not uploaded. This only lines up
with an earlier run that used the same files, in the same order, with the
same batch size; a different batch size moves every boundary.
"""

import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Sequence

from importer.batching import Batcher
from importer.core.enums import DataFormat, RunState
from importer.core.exceptions import FileAccessError, ImporterError
from importer.progress import ProgressTracker
from importer.readers import STDIN_PATH, detect_format, get_reader
from importer.upload import Uploader

logger = logging.getLogger(__name__)


_TRANSITIONS = {
    RunState.INIT: {RunState.READING, RunState.COMPLETED},
    RunState.READING: {RunState.BATCHING},
    RunState.BATCHING: {RunState.UPLOADING, RunState.READING, RunState.COMPLETED},
    RunState.UPLOADING: {RunState.BATCHING},
}


@dataclass
class ImportSummary:
    """Outcome of one run."""
    run_id: str
    state: RunState = RunState.INIT
    files: list[str] = field(default_factory=list)
    files_completed: int = 0
    batches_sent: int = 0
    batches_skipped: int = 0
    documents_sent: int = 0
    bytes_sent: int = 0
    elapsed_seconds: float = 0.0
    error: Optional[ImporterError] = None
    failed_file: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state is RunState.COMPLETED

    @property
    def resume_skip_batches(self) -> int:
        """Value of skip_batches that resumes right after the last sent batch."""
        return self.batches_skipped + self.batches_sent

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "state": str(self.state),
            "files": list(self.files),
            "files_completed": self.files_completed,
            "batches_sent": self.batches_sent,
            "batches_skipped": self.batches_skipped,
            "documents_sent": self.documents_sent,
            "bytes_sent": self.bytes_sent,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "error": str(self.error) if self.error else None,
            "failed_file": self.failed_file,
        }

    def format(self) -> str:
        """Human-readable summary printed at the end of a run."""
        lines = [
            f"Import {self.state.value.upper()} in {self.elapsed_seconds:.1f}s",
            f"  Files:     {self.files_completed}/{len(self.files)}",
            f"  Batches:   {self.batches_sent:,} sent, {self.batches_skipped:,} skipped",
            f"  Documents: {self.documents_sent:,} ({self.bytes_sent:,} bytes)",
        ]
        if self.error is not None:
            lines.append(f"  Error:     {self.error}")
            lines.append(
                f"  Resume with --skip-batches {self.resume_skip_batches} "
                f"(same files, same order, same batch size)"
            )
        return "\n".join(lines)


class ImportPipeline:
    """
    Sequential import of one or more files.

    One batch is in flight at a time; progress counters are updated only
    after a batch upload has fully resolved.

    Example:
        with Uploader.from_config(config) as uploader:
            pipeline = ImportPipeline.from_config(config, uploader)
            summary = pipeline.run(["movies.ndjson"])
    """

    def __init__(
        self,
        uploader: Uploader,
        batch_size: int,
        skip_batches: int = 0,
        csv_delimiter: str = ",",
        file_format: Optional[DataFormat] = None,
        show_progress: bool = True,
        tracker_factory: Optional[Callable[[int], ProgressTracker]] = None,
    ):
        """
        Initialize pipeline.

        Args:
            uploader: Sends batches (owned by the caller)
            batch_size: Max serialized bytes per batch
            skip_batches: Leading batches to generate but not upload
            csv_delimiter: Field separator for CSV inputs
            file_format: Force a format instead of detecting it per file
            show_progress: Render the progress bar
            tracker_factory: Builds the tracker from the total input size
        """
        if skip_batches < 0:
            raise ValueError("skip_batches must not be negative")
        self.uploader = uploader
        self.batch_size = batch_size
        self.skip_batches = skip_batches
        self.csv_delimiter = csv_delimiter
        self.file_format = file_format
        self.tracker_factory = tracker_factory or (
            lambda total: ProgressTracker(total_bytes=total, enabled=show_progress)
        )

        self.state = RunState.INIT
        self.history: list[RunState] = [RunState.INIT]

    @classmethod
    def from_config(cls, config, uploader: Uploader, **kwargs) -> "ImportPipeline":
        return cls(
            uploader=uploader,
            batch_size=config.batch_size,
            skip_batches=config.skip_batches,
            csv_delimiter=config.csv_delimiter,
            file_format=config.file_format,
            show_progress=config.show_progress,
            **kwargs,
        )

    def _transition(self, new_state: RunState):
        if new_state is self.state:
            return
        if new_state is not RunState.ABORTED and new_state not in _TRANSITIONS.get(self.state, set()):
            raise RuntimeError(f"Invalid pipeline transition {self.state} -> {new_state}")
        logger.debug(f"[ImportPipeline] {self.state} -> {new_state}")
        self.state = new_state
        self.history.append(new_state)

    # =========================================================================
    # Main Execution
    # =========================================================================

    def run(self, paths: Sequence[str]) -> ImportSummary:
        """
        Import every path in order.

        Errors from readers and the uploader abort the run; they are
        reported on the summary instead of being raised.

        Returns:
            Summary with state COMPLETED or ABORTED
        """
        if self.state is not RunState.INIT:
            raise RuntimeError("An ImportPipeline instance runs only once")

        summary = ImportSummary(run_id=str(uuid.uuid4())[:8], files=[str(p) for p in paths])
        run_id = summary.run_id
        logger.info(
            f"[{run_id}] Importing {len(paths)} file(s) into {self.uploader.url} "
            f"(batch size {self.batch_size:,} bytes, skipping {self.skip_batches} batches)"
        )

        tracker = None
        current_file = None
        try:
            formats = self._resolve_formats(paths)
            tracker = self.tracker_factory(_total_input_size(paths))
            skip_remaining = self.skip_batches

            for position, (path, data_format) in enumerate(zip(paths, formats), start=1):
                current_file = str(path)
                self._transition(RunState.READING)
                logger.info(f"[{run_id}] File {position}/{len(paths)}: {path} ({data_format})")

                reader = get_reader(data_format, self.csv_delimiter)
                batcher = Batcher(self.batch_size)
                self._transition(RunState.BATCHING)

                for batch in batcher.batches(reader.read(path)):
                    if skip_remaining > 0:
                        skip_remaining -= 1
                        tracker.skip(batch.size)
                        summary.batches_skipped += 1
                        logger.debug(f"[{run_id}] Skipping batch {batch.number} of {path}")
                        continue

                    self._transition(RunState.UPLOADING)
                    task = self.uploader.upload(batch)
                    tracker.record(batch.size, len(batch))

                    summary.batches_sent += 1
                    summary.documents_sent += len(batch)
                    summary.bytes_sent += batch.size
                    logger.debug(
                        f"[{run_id}] Batch {batch.number} of {path} sent: {len(batch)} documents, "
                        f"{batch.size:,} bytes, {task.attempts} attempt(s)"
                    )
                    self._transition(RunState.BATCHING)

                summary.files_completed += 1
                logger.info(f"[{run_id}] Finished {path}: {reader.get_stats()['records_read']:,} records")

            current_file = None
            self._transition(RunState.COMPLETED)

        except ImporterError as e:
            self._transition(RunState.ABORTED)
            summary.error = e
            summary.failed_file = current_file or getattr(e, "path", None)
            logger.error(f"[{run_id}] Import aborted: {e}")

        finally:
            if tracker is not None:
                summary.elapsed_seconds = tracker.snapshot().elapsed_seconds
                tracker.close()

        summary.state = self.state
        if summary.succeeded:
            logger.info(
                f"[{run_id}] Import completed: {summary.documents_sent:,} documents in "
                f"{summary.batches_sent:,} batches ({summary.elapsed_seconds:.1f}s)"
            )
        return summary

    def _resolve_formats(self, paths: Sequence[str]) -> list[DataFormat]:
        """Check every input up front so a bad path fails before any upload."""
        formats = []
        for path in paths:
            if str(path) != STDIN_PATH:
                if not Path(path).exists():
                    raise FileAccessError(path, "file does not exist")
                if not Path(path).is_file():
                    raise FileAccessError(path, "not a regular file")
            formats.append(detect_format(path, self.file_format))
        return formats


def _total_input_size(paths: Sequence[str]) -> int:
    total = 0
    for path in paths:
        if str(path) == STDIN_PATH:
            continue
        try:
            total += Path(path).stat().st_size
        except OSError:
            continue
    return total
