"""Post-rotation operations: archive naming, background compression, and retention sweeps."""

import gzip
import logging
import os
import re
import shutil
import threading
from datetime import datetime, timezone

from rotlog.config import FileWriterConfig

logger = logging.getLogger(__name__)

ARCHIVE_TIMESTAMP_FORMAT = "%Y-%m-%dT%H-%M-%S.%f"
COMPRESSED_EXTENSION = ".gz"
PROCESSING_EXTENSION = ".processing"
FILE_PERMISSIONS = 0o644


def split_log_filename(log_filename: str) -> tuple[str, str]:
    """Split ``app.log`` into ``("app", ".log")``."""
    prefix, ext = os.path.splitext(log_filename)
    return prefix, ext


def archive_name(active_path: str, now: datetime) -> str:
    """Return ``<dir>/<base>-<timestamp><ext>`` for the active file at *now*."""
    directory, filename = os.path.split(active_path)
    prefix, ext = split_log_filename(filename)
    timestamp = now.strftime(ARCHIVE_TIMESTAMP_FORMAT)
    return os.path.join(directory, f"{prefix}-{timestamp}{ext}")


def archive_pattern(log_filename: str) -> re.Pattern:
    """Match uncompressed archive names produced by :func:`archive_name`."""
    prefix, ext = split_log_filename(log_filename)
    return re.compile(
        re.escape(prefix)
        + r"-\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}\.\d{6}"
        + re.escape(ext)
        + "$"
    )


def compress_file(filepath: str) -> str:
    """Gzip-compress a file in place. Returns the .gz path.

    Output goes to ``<file>.gz.processing`` first and is renamed to ``<file>.gz``
    only when complete. On failure the partial output is removed, the original is
    left untouched, and the exception propagates.
    """
    gz_path = filepath + COMPRESSED_EXTENSION
    tmp_path = gz_path + PROCESSING_EXTENSION

    try:
        with open(filepath, "rb") as f_in:
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, FILE_PERMISSIONS)
            with open(fd, "wb") as raw_out, gzip.GzipFile(fileobj=raw_out, mode="wb") as f_out:
                shutil.copyfileobj(f_in, f_out)
        os.replace(tmp_path, gz_path)
    except Exception:
        _remove_quietly(tmp_path)
        raise

    try:
        os.remove(filepath)
    except FileNotFoundError:
        pass
    except OSError:
        # Never leave both the archive and its compressed copy behind.
        _remove_quietly(gz_path)
        raise
    return gz_path


def _remove_quietly(path: str):
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.error("Failed to remove %s: %s", path, e)


class CompressionGroup:
    """Counted completion barrier for background compressions."""

    def __init__(self):
        self._cond = threading.Condition()
        self._pending = 0

    @property
    def pending(self) -> int:
        with self._cond:
            return self._pending

    def spawn(self, filepath: str) -> threading.Thread:
        """Compress *filepath* on a new thread without waiting for it."""
        with self._cond:
            self._pending += 1
        thread = threading.Thread(
            target=self._run, args=(filepath,), name=f"compress-{os.path.basename(filepath)}"
        )
        try:
            thread.start()
        except RuntimeError:
            self._done()
            raise
        return thread

    def wait(self, timeout: float | None = None) -> bool:
        """Block until no compression is in flight. Returns False on timeout."""
        with self._cond:
            return self._cond.wait_for(lambda: self._pending == 0, timeout=timeout)

    def _run(self, filepath: str):
        try:
            original_size = os.path.getsize(filepath)
            gz_path = compress_file(filepath)
            logger.info(
                "Compressed: %s (original=%d bytes, compressed=%d bytes)",
                gz_path, original_size, os.path.getsize(gz_path),
            )
        except Exception:
            logger.exception("Failed to compress %s", filepath)
        finally:
            self._done()

    def _done(self):
        with self._cond:
            self._pending -= 1
            if self._pending == 0:
                self._cond.notify_all()


def sweep(config: FileWriterConfig, group: CompressionGroup, now: datetime | None = None) -> list[str]:
    """One-shot housekeeping of the log directory. Returns deleted filenames.

    Deletes every regular file older than ``config.max_age`` (when set), removes
    leftover ``.gz.processing`` outputs, and hands uncompressed archives to *group*
    when compression is enabled. Listing errors propagate; per-file errors are
    logged and skipped.
    """
    now = now or datetime.now(timezone.utc)
    pattern = archive_pattern(config.log_filename)
    deleted = []

    for name in sorted(os.listdir(config.log_dir)):
        path = os.path.join(config.log_dir, name)
        try:
            if not os.path.isfile(path):
                continue
            mtime = datetime.fromtimestamp(os.path.getmtime(path), timezone.utc)
        except OSError:
            continue

        age = now - mtime
        if config.max_age and age > config.max_age:
            try:
                os.remove(path)
            except OSError as e:
                logger.error("Failed to remove expired %s: %s", path, e)
                continue
            logger.info("Removed %s (age %s)", path, age)
            deleted.append(name)
            continue

        if name.endswith(COMPRESSED_EXTENSION + PROCESSING_EXTENSION):
            logger.warning("Removing unfinished compression output %s", path)
            _remove_quietly(path)
            continue

        if config.compression_enabled and name != config.log_filename and pattern.match(name):
            logger.info("Compressing leftover archive %s", path)
            group.spawn(path)

    return deleted
