"""Consolidation engine

Merge downloaded chunks into one media file.

Chunks are appended in strict ``chunk_number`` order. Timing gaps or
overlaps between consecutive chunks are logged and tolerated; a chunk
file that is missing, empty or unreadable fails the merge.
"""
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional
import logging
import os
import subprocess
import time
import uuid

from courtside.pipeline.errors import ConsolidationError

logger = logging.getLogger(__name__)

METHOD_FFMPEG = "ffmpeg"
METHOD_TS_CONCAT = "ts-concat"
COPY_BLOCK = 1024 * 1024
PROBE_TIMEOUT = 30.0


@dataclass(frozen=True)
class ChunkFile:
    chunk_number: int
    path: str
    start_time: datetime
    end_time: datetime
    size_bytes: int = 0

    @property
    def expected_duration(self) -> float:
        return (self.end_time - self.start_time).total_seconds()


@dataclass(frozen=True)
class ContinuityIssue:
    """Gap (positive) or overlap (negative) between two consecutive chunks, in seconds."""
    previous_chunk: int
    next_chunk: int
    seconds: float


@dataclass
class ConsolidationResult:
    output_path: str
    total_duration_seconds: float
    total_file_size_bytes: int
    chunk_count: int
    issues: list[ContinuityIssue] = field(default_factory=list)
    reused_output: bool = False


def check_continuity(chunks: list[ChunkFile], tolerance: float) -> list[ContinuityIssue]:
    """Report discontinuities larger than ``tolerance`` between ordered chunks."""
    issues = []
    for previous, current in zip(chunks, chunks[1:]):
        delta = (current.start_time - previous.end_time).total_seconds()
        if abs(delta) > tolerance:
            issue = ContinuityIssue(previous.chunk_number, current.chunk_number, delta)
            kind = "gap" if delta > 0 else "overlap"
            logger.warning(
                f"{kind} of {abs(delta):.1f}s between chunk {previous.chunk_number} "
                f"and chunk {current.chunk_number}; merging anyway"
            )
            issues.append(issue)
    return issues


def verify_chunk_files(chunks: list[ChunkFile]) -> None:
    """Hard checks before merging: every file exists, is non-empty and readable."""
    for chunk in chunks:
        path = Path(chunk.path) if chunk.path else None
        if path is None or not path.is_file():
            raise ConsolidationError(f"chunk {chunk.chunk_number} file missing: {chunk.path}")
        if path.stat().st_size == 0:
            raise ConsolidationError(f"chunk {chunk.chunk_number} file is empty: {chunk.path}")
        try:
            with open(path, "rb") as fh:
                fh.read(1)
        except OSError as e:
            raise ConsolidationError(f"chunk {chunk.chunk_number} file unreadable: {e}") from e


def order_chunks(chunks: list[ChunkFile]) -> list[ChunkFile]:
    ordered = sorted(chunks, key=lambda c: c.chunk_number)
    numbers = [c.chunk_number for c in ordered]
    if len(set(numbers)) != len(numbers):
        raise ConsolidationError(f"duplicate chunk numbers: {numbers}")
    return ordered


class ConsolidationEngine:
    """Concatenate chunk files with FFmpeg (stream copy) or plain MPEG-TS byte concatenation."""

    def __init__(
        self,
        method: str = METHOD_FFMPEG,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        tolerance_seconds: float = 2.0,
        timeout_seconds: float = 900.0,
    ):
        if method not in (METHOD_FFMPEG, METHOD_TS_CONCAT):
            raise ValueError(f"Unknown consolidation method: {method}")
        self.method = method
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.tolerance_seconds = tolerance_seconds
        self.timeout_seconds = timeout_seconds

    @property
    def output_suffix(self) -> str:
        return ".mp4" if self.method == METHOD_FFMPEG else ".ts"

    def consolidate(self, chunks: list[ChunkFile], output_path: str) -> ConsolidationResult:
        """Merge ``chunks`` into ``output_path``. Blocking; run it in a thread.

        The merge and the duration probes share one ``timeout_seconds``
        budget. Each call writes its own temporary file, so an abandoned
        call cannot clobber the output of a later one.
        """
        if not chunks:
            raise ConsolidationError("no chunks to consolidate")
        deadline = time.monotonic() + self.timeout_seconds
        ordered = order_chunks(chunks)
        verify_chunk_files(ordered)
        issues = check_continuity(ordered, self.tolerance_seconds)

        output = Path(output_path)
        reused = output.is_file() and output.stat().st_size > 0
        if reused:
            logger.info(f"Consolidated output already present, reusing {output}")
        else:
            output.parent.mkdir(parents=True, exist_ok=True)
            partial = output.with_name(f"{output.name}.{uuid.uuid4().hex[:8]}.part")
            try:
                if self.method == METHOD_FFMPEG:
                    self._merge_ffmpeg(ordered, partial, deadline)
                else:
                    self._merge_ts(ordered, partial, deadline)
            except Exception:
                partial.unlink(missing_ok=True)
                raise
            os.replace(partial, output)

        durations = [self._chunk_duration(c, deadline) for c in ordered]
        result = ConsolidationResult(
            output_path=str(output),
            total_duration_seconds=round(sum(durations), 3),
            total_file_size_bytes=sum(Path(c.path).stat().st_size for c in ordered),
            chunk_count=len(ordered),
            issues=issues,
            reused_output=reused,
        )
        logger.info(
            f"Consolidated {result.chunk_count} chunks into {output} "
            f"({result.total_duration_seconds:.0f}s, {result.total_file_size_bytes} bytes)"
        )
        return result

    def _merge_ts(self, chunks: list[ChunkFile], partial: Path, deadline: float) -> None:
        try:
            with open(partial, "wb") as out:
                for chunk in chunks:
                    with open(chunk.path, "rb") as src:
                        while True:
                            block = src.read(COPY_BLOCK)
                            if not block:
                                break
                            out.write(block)
                            if time.monotonic() >= deadline:
                                raise ConsolidationError(
                                    f"ts concat timed out after {self.timeout_seconds:.0f}s "
                                    f"at chunk {chunk.chunk_number}"
                                )
        except OSError as e:
            raise ConsolidationError(f"merge failed: {e}") from e

    def _merge_ffmpeg(self, chunks: list[ChunkFile], partial: Path, deadline: float) -> None:
        list_path = partial.with_name(partial.name + ".txt")
        lines = []
        for chunk in chunks:
            escaped = str(Path(chunk.path).resolve()).replace("'", "'\\''")
            lines.append(f"file '{escaped}'\n")
        list_path.write_text("".join(lines))
        cmd = [
            self.ffmpeg_path, "-y", "-loglevel", "error",
            "-f", "concat", "-safe", "0", "-i", str(list_path),
            "-c", "copy",
            "-movflags", "+faststart",
            "-f", "mp4",
            str(partial),
        ]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True,
                                    timeout=max(0.0, deadline - time.monotonic()))
        except FileNotFoundError as e:
            raise ConsolidationError(f"ffmpeg not found at {self.ffmpeg_path}") from e
        except subprocess.TimeoutExpired as e:
            raise ConsolidationError(f"ffmpeg concat timed out after {self.timeout_seconds:.0f}s") from e
        finally:
            list_path.unlink(missing_ok=True)
        if result.returncode != 0:
            raise ConsolidationError(f"ffmpeg concat failed: {result.stderr[-500:]}")

    def _chunk_duration(self, chunk: ChunkFile, deadline: float) -> float:
        """Probed duration when available, otherwise the exported window length."""
        expected = chunk.expected_duration
        if self.method != METHOD_FFMPEG:
            return expected
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            logger.warning(f"no time left to probe chunk {chunk.chunk_number}, using window length")
            return expected
        probed = self._probe_duration(chunk.path, min(PROBE_TIMEOUT, remaining))
        if probed is None:
            return expected
        if abs(probed - expected) > self.tolerance_seconds:
            logger.warning(
                f"chunk {chunk.chunk_number} runs {probed:.1f}s, window is {expected:.1f}s"
            )
        return probed

    def _probe_duration(self, path: str, timeout: float = PROBE_TIMEOUT) -> Optional[float]:
        try:
            result = subprocess.run(
                [self.ffprobe_path, "-v", "quiet", "-show_entries", "format=duration",
                 "-of", "csv=p=0", path],
                capture_output=True, text=True, timeout=timeout,
            )
            return float(result.stdout.strip())
        except (OSError, subprocess.TimeoutExpired, ValueError) as e:
            logger.warning(f"ffprobe failed for {path}: {e}")
            return None
