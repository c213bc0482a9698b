"""Concurrent extraction pipeline: discover -> parse -> load -> extract -> write.

Each stage runs on its own worker thread(s) and hands tokens to the next
stage through a bounded queue:

    discover  1 worker   reads the listing in order, numbers each token
    parse     1 worker   annotation file -> AnnotationRecord
    load      1 worker   record -> decoded source image
    extract   N workers  record + image -> patches (may finish out of order)
    write     1 worker   restores listing order, assigns output indices

At most N tokens are in flight at once: discover takes a slot before
emitting a token and write gives it back after the token's patches are
written, so a slow stage stalls reading instead of growing a buffer.

On the first failure discovery stops and every token numbered at or after
the failing one is dropped; tokens before it still finish, so output
indices always form a contiguous prefix in listing order.
"""

from __future__ import annotations

import logging
import math
import os
import queue
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator, TextIO

import numpy as np
from rich.console import Console

from pascalpatch.annotation.grammar import AnnotationParser
from pascalpatch.config import PipelineConfig
from pascalpatch.errors import ImageBoundsError, InputStreamError, PascalPatchError, StageError
from pascalpatch.extract.patches import PatchExtractor
from pascalpatch.pipeline.progress import ProgressReporter
from pascalpatch.types import AnnotationRecord, CounterSnapshot, Patch, PipelineCounters
from pascalpatch.utils.image import ImageCodec, OpenCVImageCodec
from pascalpatch.utils.naming import OutputTemplate

logger = logging.getLogger(__name__)

# End-of-stream marker passed down the queues.
_DONE = object()

# How often a blocked discover stage re-checks for an abort, in seconds.
_SLOT_POLL = 0.05


@dataclass
class _Token:
    """One annotation file travelling through the stages.

    Each stage fills in its field and hands the token on; the image is
    dropped once the patches exist.
    """

    seq: int
    annotation_path: Path
    record: AnnotationRecord | None = None
    image: np.ndarray | None = None
    patches: list[Patch] | None = None


@dataclass
class PipelineResult:
    """Outcome of a successful pipeline run."""

    counters: CounterSnapshot
    outputs: list[Path] = field(default_factory=list)
    elapsed_seconds: float = 0.0


class PipelineOrchestrator:
    """Run the five-stage extraction pipeline over an annotation listing.

    Args:
        parser: Annotation parser used by the parse stage.
        extractor: Patch extractor used by the extract stage.
        codec: Image reader/writer for the load and write stages.
        config: Concurrency cap, progress interval and default extension.
        console: Where the progress line is drawn.
        show_progress: Disable to run without a progress line.
    """

    def __init__(
        self,
        parser: AnnotationParser | None = None,
        extractor: PatchExtractor | None = None,
        codec: ImageCodec | None = None,
        config: PipelineConfig | None = None,
        console: Console | None = None,
        show_progress: bool = True,
    ) -> None:
        self.parser = parser or AnnotationParser()
        self.extractor = extractor or PatchExtractor()
        self.codec = codec or OpenCVImageCodec()
        self.config = config or PipelineConfig()
        self.console = console
        self.show_progress = show_progress

    @property
    def max_tokens(self) -> int:
        return self.config.max_tokens or os.cpu_count() or 1

    def run(
        self,
        listing: TextIO,
        base_dir: Path,
        output: OutputTemplate | str | Path,
    ) -> PipelineResult:
        """Process every annotation file named in ``listing``.

        Args:
            listing: Text stream with one annotation path per line.
            base_dir: Directory the listed paths and image paths are relative to.
            output: Output name template, validated before any stage runs.

        Returns:
            Counters and written paths.

        Raises:
            OutputTemplateError: before processing, for an invalid template.
            ParseError, ImageLoadError, ImageBoundsError, PatchWriteError,
            StageError: the first stage failure, naming the offending file.
            InputStreamError: after processing, if the listing failed mid-read.
        """
        if not isinstance(output, OutputTemplate):
            output = OutputTemplate.parse(output, self.config.output_extension)
        return _PipelineRun(self, listing, Path(base_dir), output).execute()


class _PipelineRun:
    """State of one ``PipelineOrchestrator.run`` invocation."""

    def __init__(
        self,
        owner: PipelineOrchestrator,
        listing: TextIO,
        base_dir: Path,
        template: OutputTemplate,
    ) -> None:
        self.owner = owner
        self.listing = listing
        self.base_dir = base_dir
        self.template = template
        self.workers = owner.max_tokens

        self.counters = PipelineCounters()
        self.slots = threading.Semaphore(self.workers)
        self.parse_queue: queue.Queue = queue.Queue(maxsize=self.workers)
        self.load_queue: queue.Queue = queue.Queue(maxsize=self.workers)
        self.extract_queue: queue.Queue = queue.Queue(maxsize=self.workers)
        self.write_queue: queue.Queue = queue.Queue(maxsize=self.workers)

        self.aborted = threading.Event()
        self._error_lock = threading.Lock()
        self._cutoff: float = math.inf
        self.error: BaseException | None = None
        self.stream_error: BaseException | None = None
        self.outputs: list[Path] = []

        self.reporter: ProgressReporter | None = None
        if owner.show_progress:
            self.reporter = ProgressReporter(
                self.counters, console=owner.console, interval=owner.config.progress_interval,
            )

    # -- driver -------------------------------------------------------------

    def execute(self) -> PipelineResult:
        started = time.monotonic()
        threads = [
            threading.Thread(target=self._discover, name="discover"),
            threading.Thread(
                target=self._serial_stage,
                args=("parse", self.parse_queue, self.load_queue, self._parse, 1),
                name="parse",
            ),
            threading.Thread(
                target=self._serial_stage,
                args=("load", self.load_queue, self.extract_queue, self._load, self.workers),
                name="load",
            ),
        ]
        threads.extend(
            threading.Thread(target=self._extract_worker, name=f"extract-{i}")
            for i in range(self.workers)
        )
        threads.append(threading.Thread(target=self._write, name="write"))

        logger.debug("Starting pipeline with %d extract workers", self.workers)
        if self.reporter is not None:
            self.reporter.start()
        try:
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()
        finally:
            if self.reporter is not None:
                if self.error is not None:
                    self.reporter.cancel()
                self.reporter.close()

        if self.error is not None:
            raise self.error
        if self.stream_error is not None:
            raise InputStreamError(self.stream_error) from self.stream_error

        elapsed = time.monotonic() - started
        snapshot = self.counters.snapshot()
        logger.info(
            "Processed %d annotations, wrote %d patches in %.1fs",
            snapshot.parsed, snapshot.written, elapsed,
        )
        return PipelineResult(counters=snapshot, outputs=self.outputs, elapsed_seconds=elapsed)

    def _fail(self, seq: int, exc: BaseException) -> None:
        """Record a stage failure. The earliest failing token in listing order wins."""
        with self._error_lock:
            if seq < self._cutoff:
                self._cutoff = seq
                self.error = exc
        logger.debug("Aborting pipeline at token %d: %s", seq, exc)
        self.aborted.set()
        if self.reporter is not None:
            self.reporter.cancel()

    def _dropped(self, token: _Token) -> bool:
        return token.seq >= self._cutoff

    # -- discover -----------------------------------------------------------

    def _listing_paths(self) -> Iterator[Path]:
        for line in self.listing:
            name = line.strip()
            if name:
                yield self.base_dir / name

    def _acquire_slot(self) -> bool:
        while not self.aborted.is_set():
            if self.slots.acquire(timeout=_SLOT_POLL):
                return True
        return False

    def _discover(self) -> None:
        seq = 0
        try:
            for path in self._listing_paths():
                if not self._acquire_slot():
                    break
                self.counters.increment_discovered()
                self.parse_queue.put(_Token(seq, path))
                seq += 1
        except (OSError, ValueError) as e:  # UnicodeDecodeError, closed stream
            logger.error("Reading the annotation listing failed: %s", e)
            self.stream_error = e
        except Exception as e:
            listing_name = Path(getattr(self.listing, "name", "<listing>"))
            self._fail(seq, StageError("discover", listing_name, e))
        finally:
            self.parse_queue.put(_DONE)

    # -- serial middle stages -------------------------------------------------

    def _serial_stage(
        self,
        name: str,
        inbox: queue.Queue,
        outbox: queue.Queue,
        body: Callable[[_Token], None],
        consumers: int,
    ) -> None:
        while True:
            token = inbox.get()
            if token is _DONE:
                break
            if self._dropped(token):
                continue
            try:
                body(token)
            except PascalPatchError as e:
                self._fail(token.seq, e)
                continue
            except Exception as e:
                self._fail(token.seq, StageError(name, token.annotation_path, e))
                continue
            outbox.put(token)
        for _ in range(consumers):
            outbox.put(_DONE)

    def _parse(self, token: _Token) -> None:
        token.record = self.owner.parser.parse_file(token.annotation_path)

    def _load(self, token: _Token) -> None:
        record = token.record
        token.image = self.owner.codec.read(record.resolve_image_path(self.base_dir))
        self.counters.add_objects(len(record.objects))

    # -- extract --------------------------------------------------------------

    def _extract_worker(self) -> None:
        while True:
            token = self.extract_queue.get()
            if token is _DONE:
                self.write_queue.put(_DONE)
                return
            if self._dropped(token):
                continue
            try:
                token.patches = self.owner.extractor.extract(token.record, token.image)
            except ImageBoundsError as e:
                self._fail(token.seq, e.with_file(token.annotation_path))
                continue
            except Exception as e:
                self._fail(token.seq, StageError("extract", token.annotation_path, e))
                continue
            token.image = None
            self.counters.increment_parsed()
            self.write_queue.put(token)

    # -- write ----------------------------------------------------------------

    def _write(self) -> None:
        pending: dict[int, _Token] = {}
        next_seq = 0
        remaining = self.workers
        while remaining:
            token = self.write_queue.get()
            if token is _DONE:
                remaining -= 1
                continue
            pending[token.seq] = token
            while next_seq in pending and next_seq < self._cutoff:
                ready = pending.pop(next_seq)
                try:
                    self._write_patches(ready)
                except PascalPatchError as e:
                    self._fail(ready.seq, e)
                except Exception as e:
                    self._fail(ready.seq, StageError("write", ready.annotation_path, e))
                next_seq += 1
                self.slots.release()
        if pending:
            logger.debug("Discarded %d tokens after abort", len(pending))

    def _write_patches(self, token: _Token) -> None:
        for patch in token.patches:
            index = self.counters.increment_written()
            path = self.template.render(index)
            self.owner.codec.write(path, patch.image)
            self.outputs.append(path)
        logger.debug("Wrote %d patches for %s", len(token.patches), token.annotation_path)
