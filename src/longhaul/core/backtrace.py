"""Backtrace cleaning for persisted errors.

Keeps the frames an operator can act on: frames from installed packages
and the standard library are dropped.
"""

import sysconfig
import traceback
from pathlib import Path

_LIBRARY_ROOTS: tuple[str, ...] = tuple(
    {str(Path(p).resolve()) for key in ("stdlib", "platstdlib", "purelib", "platlib") if (p := sysconfig.get_paths().get(key))}
)


def _is_library_frame(filename: str) -> bool:
    if "site-packages" in filename or "dist-packages" in filename:
        return True
    if filename.startswith("<"):
        # <frozen importlib._bootstrap> and friends
        return True
    resolved = str(Path(filename).resolve())
    return resolved.startswith(_LIBRARY_ROOTS)


def clean_backtrace(error: BaseException) -> list[str]:
    """Format the traceback of ``error`` as ``file:line in function`` lines.

    Library frames are removed. If that leaves nothing, the full backtrace
    is returned instead so the record is never empty for a raised error.
    """
    frames = traceback.extract_tb(error.__traceback__)
    lines = [f"{frame.filename}:{frame.lineno} in {frame.name}" for frame in frames]
    cleaned = [line for line, frame in zip(lines, frames, strict=True) if not _is_library_frame(frame.filename)]
    return cleaned or lines
