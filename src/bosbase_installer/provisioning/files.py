"""Atomic publication of generated files.

Artifacts are written to a temporary sibling, flushed to disk and then
renamed over the destination. A reader sees either the previous artifact or
the complete new one, never a truncated file.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path


def atomic_write(path: Path, content: str, mode: int = 0o644) -> Path:
    """Write content to path atomically.

    Args:
        path: Destination file. Its parent directory is created if missing.
        content: Full text of the file.
        mode: Permission bits applied before the file is published.

    Returns:
        The destination path.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    return path


def replace_symlink(link: Path, target: Path) -> Path:
    """Point link at target, replacing any existing file or link.

    Args:
        link: Symlink location (e.g. /etc/caddy/Caddyfile)
        target: File the link should resolve to

    Returns:
        The link path.
    """
    link.parent.mkdir(parents=True, exist_ok=True)
    tmp_link = link.with_name(f".{link.name}.link.tmp")
    tmp_link.unlink(missing_ok=True)
    tmp_link.symlink_to(target)
    os.replace(tmp_link, link)
    return link
