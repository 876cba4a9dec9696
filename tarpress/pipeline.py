from __future__ import annotations

import asyncio
import concurrent.futures as _fut
import functools
import lzma
import os
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Type

from .cancel import CancelToken
from .codec import compress_data
from .constants import (
    PCT_START,
    PCT_SOURCE_HASHED,
    PCT_SOURCE_OPENED,
    PCT_EXTRACTED,
    PCT_DEDUP_START,
    PCT_DEDUP_DONE,
    PCT_FRAME_START,
    PCT_FRAMED,
    PCT_COMPRESSED,
    PCT_VERIFIED,
    PCT_DONE,
)
from .dedup import deduplicate
from .errors import (
    CompressionError,
    ExtractionError,
    FramingError,
    IntegrityComputeError,
    TarpressError,
)
from .hashutil import fingerprint
from .settings import ConversionSettings, output_name
from .source import extract_members
from .tarframe import frame


class Stage(str, Enum):
    PENDING = "pending"
    ANALYZING = "analyzing"
    DEDUPLICATING = "deduplicating"
    CONVERTING = "converting"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class ProgressEvent:
    job_id: str
    stage: Stage
    percent: float
    message: str = ""


ProgressCallback = Callable[[ProgressEvent], None]


class ProgressTracker:
    """Per-job progress state; keeps percentages monotonic.

    100 is reserved for the completed stage, so intermediate reports are
    clamped just below it.
    """

    def __init__(self, job_id: str, callback: Optional[ProgressCallback] = None):
        self.job_id = job_id
        self.callback = callback
        self.stage = Stage.PENDING
        self.percent = PCT_START

    def emit(self, stage: Stage, percent: float, message: str = "") -> None:
        ceiling = PCT_DONE if stage is Stage.COMPLETED else min(percent, PCT_DONE - 0.01)
        self.percent = max(self.percent, ceiling)
        self.stage = stage
        if self.callback is not None:
            self.callback(ProgressEvent(self.job_id, stage, self.percent, message))

    def complete(self) -> None:
        self.emit(Stage.COMPLETED, PCT_DONE)

    def fail(self, message: str) -> None:
        self.stage = Stage.ERROR
        if self.callback is not None:
            self.callback(ProgressEvent(self.job_id, Stage.ERROR, self.percent, message))


@dataclass
class ConversionResult:
    compressed_bytes: bytes
    original_checksum: str
    compressed_checksum: Optional[str]
    compression_ratio_percent: float
    original_size: int
    compressed_size: int
    elapsed_ms: float
    algorithm: str
    duplicate_summaries: List[str] = field(default_factory=list)
    member_count: int = 0
    unique_count: int = 0
    framed_size: int = 0
    mime_type: str = ""
    job_id: str = ""
    fallback_used: bool = False

    def to_dict(self) -> Dict:
        """JSON-friendly summary (without the compressed bytes)."""
        return {
            "job_id": self.job_id,
            "algorithm": self.algorithm,
            "mime_type": self.mime_type,
            "original_size": self.original_size,
            "compressed_size": self.compressed_size,
            "framed_size": self.framed_size,
            "compression_ratio_percent": round(self.compression_ratio_percent, 2),
            "elapsed_ms": round(self.elapsed_ms, 3),
            "original_checksum": self.original_checksum,
            "compressed_checksum": self.compressed_checksum,
            "member_count": self.member_count,
            "unique_count": self.unique_count,
            "duplicate_summaries": list(self.duplicate_summaries),
            "fallback_used": self.fallback_used,
        }


def compression_ratio(original_size: int, compressed_size: int) -> float:
    if original_size <= 0:
        return 0.0
    return (original_size - compressed_size) / original_size * 100.0


# Error class used when a step fails with a non-tarpress exception.
# Hashing already raises IntegrityComputeError, so other dedup failures
# (worker pool, memory) stay generic.
_STEP_ERRORS: Dict[str, Type[TarpressError]] = {
    "checksum": IntegrityComputeError,
    "extract": ExtractionError,
    "frame": FramingError,
    "compress": CompressionError,
    "verify": IntegrityComputeError,
}


def _wrap(step: str, exc: BaseException) -> TarpressError:
    cls = _STEP_ERRORS.get(step, TarpressError)
    if cls is ExtractionError:
        return ExtractionError("<source>", str(exc) or type(exc).__name__)
    return cls(f"{step} failed: {str(exc) or type(exc).__name__}")


def convert_archive(
    data: bytes,
    settings: Optional[ConversionSettings] = None,
    *,
    on_progress: Optional[ProgressCallback] = None,
    cancel: Optional[CancelToken] = None,
    job_id: Optional[str] = None,
    mtime: Optional[int] = None,
    workers: Optional[int] = None,
    clock: Callable[[], float] = time.perf_counter,
) -> ConversionResult:
    """Convert ZIP bytes into a deduplicated, compressed tape-archive.

    Args:
        data: Raw bytes of the source ZIP archive.
        settings: Job configuration; defaults to gzip level 6 with
            deduplication and integrity checks enabled.
        on_progress: Receives a ProgressEvent at each step boundary.
        cancel: Checked between steps; raises ConversionCancelled when set.
        job_id: Identifier copied into events and the result.
        mtime: Header timestamp for every record; defaults to now.
        workers: Thread count for fingerprinting (None lets the pool decide).

    Returns:
        The ConversionResult. Nothing partial is ever returned.

    Raises:
        TarpressError: Any failure; a final ``error`` event is emitted first.
    """
    settings = settings or ConversionSettings()
    job_id = job_id or uuid.uuid4().hex[:9]
    tracker = ProgressTracker(job_id, on_progress)
    step = "checksum"
    t0 = clock()

    def checkpoint(name: str) -> None:
        nonlocal step
        step = name
        if cancel is not None:
            cancel.raise_if_cancelled(name)

    try:
        tracker.emit(Stage.ANALYZING, PCT_START)
        checkpoint("checksum")
        original_checksum = fingerprint(data)
        tracker.emit(Stage.ANALYZING, PCT_SOURCE_HASHED)

        checkpoint("extract")
        tracker.emit(Stage.ANALYZING, PCT_SOURCE_OPENED)
        span = PCT_EXTRACTED - PCT_SOURCE_OPENED

        def _on_member(i: int, total: int) -> None:
            tracker.emit(Stage.ANALYZING, PCT_SOURCE_OPENED + span * i / total)

        members = extract_members(data, on_member=_on_member, cancel=cancel)
        tracker.emit(Stage.ANALYZING, PCT_EXTRACTED)

        if settings.enable_deduplication:
            checkpoint("dedup")
            tracker.emit(Stage.DEDUPLICATING, PCT_DEDUP_START)
        dd = deduplicate(members, enabled=settings.enable_deduplication, workers=workers)
        if settings.enable_deduplication:
            tracker.emit(Stage.DEDUPLICATING, PCT_DEDUP_DONE)

        checkpoint("frame")
        tracker.emit(Stage.CONVERTING, PCT_FRAME_START)
        framed = frame(dd.uniques, mtime=mtime, long_names=settings.long_names, cancel=cancel)
        tracker.emit(Stage.CONVERTING, PCT_FRAMED)

        checkpoint("compress")
        payload = compress_data(framed, settings.algorithm, settings.level)
        compressed = payload.data
        tracker.emit(Stage.CONVERTING, PCT_COMPRESSED)

        compressed_checksum = None
        if settings.enable_integrity_check:
            checkpoint("verify")
            compressed_checksum = fingerprint(compressed)
            tracker.emit(Stage.CONVERTING, PCT_VERIFIED)
    except TarpressError as exc:
        tracker.fail(str(exc))
        raise
    except (OSError, MemoryError, EOFError, lzma.LZMAError) as exc:
        err = _wrap(step, exc)
        tracker.fail(str(err))
        raise err from exc

    elapsed_ms = (clock() - t0) * 1000.0
    result = ConversionResult(
        compressed_bytes=compressed,
        original_checksum=original_checksum,
        compressed_checksum=compressed_checksum,
        compression_ratio_percent=compression_ratio(len(data), len(compressed)),
        original_size=len(data),
        compressed_size=len(compressed),
        elapsed_ms=elapsed_ms,
        algorithm=settings.algorithm.value,
        duplicate_summaries=dd.duplicate_summaries,
        member_count=len(members),
        unique_count=len(dd.uniques),
        framed_size=len(framed),
        mime_type=settings.algorithm.mime_type,
        job_id=job_id,
        fallback_used=payload.fallback_used,
    )
    tracker.complete()
    return result


async def convert_archive_async(
    data: bytes,
    settings: Optional[ConversionSettings] = None,
    *,
    on_progress: Optional[ProgressCallback] = None,
    **kwargs,
) -> ConversionResult:
    """Run ``convert_archive`` on the default executor.

    Progress events are delivered on the event loop thread.
    """
    loop = asyncio.get_running_loop()
    cb = None
    if on_progress is not None:
        def cb(ev: ProgressEvent) -> None:
            loop.call_soon_threadsafe(on_progress, ev)
    call = functools.partial(convert_archive, data, settings, on_progress=cb, **kwargs)
    return await loop.run_in_executor(None, call)


# -------- Batch conversion of files on disk --------

@dataclass
class JobOutcome:
    source: str
    status: str = "pending"
    output_path: Optional[str] = None
    result: Optional[ConversionResult] = None
    error_kind: Optional[str] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status == Stage.COMPLETED.value

    def to_dict(self) -> Dict:
        d = {
            "source": self.source,
            "status": self.status,
            "output": self.output_path,
        }
        if self.result is not None:
            d["result"] = self.result.to_dict()
        if self.error_kind:
            d["error_kind"] = self.error_kind
            d["message"] = self.message
        return d


def convert_file(
    path: str,
    settings: ConversionSettings,
    *,
    outdir: Optional[str] = None,
    on_progress: Optional[ProgressCallback] = None,
    cancel: Optional[CancelToken] = None,
    job_id: Optional[str] = None,
) -> JobOutcome:
    """Convert one ZIP file on disk; failures are reported in the outcome."""
    outcome = JobOutcome(source=path)
    dest_dir = outdir or os.path.dirname(path) or "."
    dest = os.path.join(dest_dir, output_name(os.path.basename(path), settings.algorithm))
    try:
        with open(path, "rb") as f:
            data = f.read()
        res = convert_archive(data, settings, on_progress=on_progress, cancel=cancel, job_id=job_id or path)
        os.makedirs(dest_dir, exist_ok=True)
        with open(dest, "wb") as f:
            f.write(res.compressed_bytes)
    except TarpressError as exc:
        outcome.status = Stage.ERROR.value
        outcome.error_kind = exc.kind
        outcome.message = str(exc)
        return outcome
    except OSError as exc:
        outcome.status = Stage.ERROR.value
        outcome.error_kind = "io"
        outcome.message = str(exc)
        return outcome
    outcome.status = Stage.COMPLETED.value
    outcome.output_path = dest
    outcome.result = res
    return outcome


def convert_files(
    paths: List[str],
    settings: ConversionSettings,
    *,
    outdir: Optional[str] = None,
    jobs: int = 4,
    on_progress: Optional[ProgressCallback] = None,
    cancel: Optional[CancelToken] = None,
) -> List[JobOutcome]:
    """Convert many ZIP files as independent jobs; outcomes keep input order."""

    def _runner(p: str) -> JobOutcome:
        return convert_file(p, settings, outdir=outdir, on_progress=on_progress, cancel=cancel)

    with _fut.ThreadPoolExecutor(max_workers=max(1, int(jobs))) as ex:
        return list(ex.map(_runner, paths))
