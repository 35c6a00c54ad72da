"""Logging setup and cleanup of per-process log files."""

from __future__ import annotations

import logging
import os
import re
import sys
import time
from pathlib import Path

logger = logging.getLogger(__name__)

LOG_FILE_PREFIX = "codeagent-wrapper"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_LOG_FILE_RE = re.compile(rf"^{re.escape(LOG_FILE_PREFIX)}-(\d+)(?:-[^.]+)?\.log$")


def log_file_path(log_dir: Path, pid: int | None = None) -> Path:
    return log_dir / f"{LOG_FILE_PREFIX}-{pid if pid is not None else os.getpid()}.log"


def configure_logging(*, debug: bool = False, log_dir: Path | None = None) -> Path | None:
    """Send warnings (or everything with `debug`) to stderr and all records to a file.

    Returns the log file path, or None when no directory was given or it
    could not be created.
    """

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.DEBUG if debug else logging.WARNING)
    handlers: list[logging.Handler] = [stderr_handler]

    log_path: Path | None = None
    if log_dir is not None:
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            log_path = log_file_path(log_dir)
            file_handler = logging.FileHandler(log_path, encoding="utf-8", delay=True)
            file_handler.setLevel(logging.DEBUG)
            handlers.append(file_handler)
        except OSError as error:
            log_path = None
            print(f"Warning: file logging disabled: {error}", file=sys.stderr)  # noqa: T201

    logging.basicConfig(level=logging.DEBUG, format=LOG_FORMAT, handlers=handlers, force=True)
    return log_path


def is_process_running(pid: int) -> bool:
    """Probe a pid with signal 0; a permission error still means it exists."""

    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except PermissionError:
        return True
    except OSError:
        return False
    return True


def cleanup_old_logs(log_dir: Path, *, max_age_days: float | None = None) -> int:
    """Delete log files left behind by finished processes.

    A file qualifies when the process that wrote it is gone, or when it is
    older than `max_age_days`. Symlinks, files outside `log_dir` and the
    current process's log are never touched. Returns the number removed.
    """

    if not log_dir.is_dir():
        return 0

    root = log_dir.resolve()
    cutoff = time.time() - max_age_days * 86_400 if max_age_days is not None else None
    own_pid = os.getpid()
    removed = 0
    for path in sorted(log_dir.iterdir()):
        match = _LOG_FILE_RE.match(path.name)
        if match is None or path.is_symlink():
            continue
        if path.resolve().parent != root:
            continue
        pid = int(match.group(1))
        if pid == own_pid:
            continue
        try:
            expired = cutoff is not None and path.stat().st_mtime < cutoff
            if expired or not is_process_running(pid):
                path.unlink()
                removed += 1
        except OSError as error:
            logger.warning("Could not remove log file %s: %s", path, error)
    logger.info("Removed %d old log files from %s", removed, log_dir)
    return removed
