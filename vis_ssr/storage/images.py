from __future__ import annotations
from pathlib import Path
from uuid import uuid4


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def new_filename(ext: str) -> str:
    return f"{uuid4()}.{ext.lstrip('.')}"


def save_artifact(directory: Path, ext: str, content: bytes | str) -> str:
    """
    Write one rendered artifact under a fresh name and return that name.
    str content is stored as UTF-8. A half-written file is removed before
    the error is re-raised, so callers never hand out a broken reference.
    """
    filename = new_filename(ext)
    path = directory / filename
    try:
        if isinstance(content, str):
            path.write_text(content, encoding="utf-8")
        else:
            path.write_bytes(content)
    except Exception:
        path.unlink(missing_ok=True)
        raise
    return filename
