"""Append-only log file writer with size-based rotation, compression, and retention."""

import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import BinaryIO

from rotlog.config import FileWriterConfig
from rotlog.rotator import FILE_PERMISSIONS, CompressionGroup, archive_name, sweep

logger = logging.getLogger(__name__)

DIR_PERMISSIONS = 0o755


class WriterClosedError(ValueError):
    """Raised when writing to a FileWriter that has been closed."""


class RotationError(OSError):
    """Raised when rotation fails after the payload already reached the file.

    ``written`` holds the number of bytes that were persisted; the payload must
    not be written again.
    """

    def __init__(self, message: str, written: int):
        super().__init__(message)
        self.written = written


class WriterStateError(RuntimeError):
    """Internal invariant violation; the writer cannot continue."""


@dataclass
class _WriterState:
    file: BinaryIO | None = None
    byte_count: int = 0
    closed: bool = False


class FileWriter:
    """Thread-safe byte sink that rotates its file once it grows past a threshold."""

    def __init__(self, config: FileWriterConfig, time_func=None):
        self._config = config
        self._time_func = time_func or (lambda: datetime.now(timezone.utc))
        self._filepath = config.log_path
        self._lock = threading.Lock()
        self._state = _WriterState()
        self._compressions = CompressionGroup()
        self._initialize()

    def _initialize(self):
        os.makedirs(self._config.log_dir, mode=DIR_PERMISSIONS, exist_ok=True)

        deleted = sweep(self._config, self._compressions, now=self._time_func())
        if deleted:
            logger.info("Purged %d file(s): %s", len(deleted), ", ".join(deleted))

        try:
            size = os.path.getsize(self._filepath)
        except FileNotFoundError:
            size = None

        if size is not None:
            if size >= self._config.max_file_size_bytes:
                self._archive()
                logger.info("Rotated oversized log file %s at startup", self._filepath)
            else:
                self._state.byte_count = size
                logger.info("Appending to %s (size=%d)", self._filepath, size)

        self._state.file = self._open()

    def _open(self) -> BinaryIO:
        fd = os.open(self._filepath, os.O_WRONLY | os.O_APPEND | os.O_CREAT, FILE_PERMISSIONS)
        return open(fd, "ab", buffering=0)

    @property
    def path(self) -> str:
        return self._filepath

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._state.closed

    @property
    def pending_compressions(self) -> int:
        return self._compressions.pending

    def write(self, data: bytes) -> int:
        """Append *data* to the active file. Returns the number of bytes written."""
        if isinstance(data, str):
            raise TypeError("FileWriter.write() requires bytes, not str")

        with self._lock:
            state = self._state
            if state.closed:
                raise WriterClosedError("write to closed FileWriter")

            if state.file is None:
                # A previous rotation failed part-way; pick the active file back up.
                state.file = self._open()
                state.byte_count = os.fstat(state.file.fileno()).st_size

            written = self._write_all(state, data)

            if state.byte_count > self._config.max_file_size_bytes:
                try:
                    self._rotate()
                except OSError as e:
                    raise RotationError(f"rotation of {self._filepath} failed: {e}", written) from e
            return written

    def _write_all(self, state: _WriterState, data: bytes) -> int:
        """Write every byte of *data* straight to the OS; nothing stays buffered."""
        view = memoryview(data).cast("B")
        written = 0
        try:
            while written < len(view):
                written += state.file.write(view[written:])
        finally:
            state.byte_count += written
        return written

    def _rotate(self):
        """Close, archive, and reopen the active file. Caller must hold self._lock."""
        state = self._state
        if state.file is None:
            logger.critical("Log writer inconsistency: no active file during rotation of %s", self._filepath)
            raise WriterStateError("active log file missing during rotation")

        file, state.file = state.file, None
        file.close()

        os.makedirs(self._config.log_dir, mode=DIR_PERMISSIONS, exist_ok=True)
        self._archive()
        state.byte_count = 0

        state.file = self._open()

    def _archive(self) -> str:
        """Rename the active file to its timestamped archive name."""
        rotated_path = archive_name(self._filepath, self._time_func())
        os.replace(self._filepath, rotated_path)

        if self._config.compression_enabled:
            self._compressions.spawn(rotated_path)
        return rotated_path

    def close(self):
        """Reject further writes, wait for background compressions, close the file."""
        with self._lock:
            if self._state.closed:
                return
            self._state.closed = True

        self._compressions.wait()

        with self._lock:
            file, self._state.file = self._state.file, None
        if file is not None:
            file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
