"""Local filesystem storage for submission uploads.

Each submission gets its own directory (its namespace) under the base dir.
Objects are created with O_EXCL so two writers can never land on one name.
"""
from __future__ import annotations

import os
import re
from pathlib import Path

FILE_MODE = 0o644
MAX_NAME_LENGTH = 200

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def _clean_part(part: str) -> str:
    part = _UNSAFE_CHARS.sub("-", part)
    return re.sub(r"-{2,}", "-", part).strip(".-")


def sanitize_file_name(name: str) -> str:
    """Reduce an uploaded filename to a safe basename (no directories, no odd characters).

    The extension is split off before cleaning so it survives a stem that
    cleans down to nothing: ``作品.jpg`` becomes ``file.jpg``.
    """
    base = re.split(r"[\\/]", name or "")[-1].strip()
    stem, dot, ext = base.rpartition(".")
    if not dot:
        stem, ext = base, ""
    stem, ext = _clean_part(stem) or "file", _clean_part(ext).lower()
    if not ext:
        return stem[:MAX_NAME_LENGTH]
    return f"{stem[: MAX_NAME_LENGTH - len(ext) - 1]}.{ext}"


def _split_name(name: str) -> tuple[str, str]:
    stem, dot, ext = name.rpartition(".")
    if not dot or not stem:
        return name, ""
    return stem, f".{ext}"


class LocalStorage:
    def __init__(self, base_dir: str | os.PathLike, base_url: str = "/uploads") -> None:
        self.base_dir = Path(base_dir)
        self.base_url = base_url.rstrip("/")

    def _namespace_dir(self, namespace: str) -> Path:
        safe = sanitize_file_name(str(namespace))
        return self.base_dir / safe

    def path(self, namespace: str, name: str) -> Path:
        return self._namespace_dir(namespace) / name

    def exists(self, namespace: str, name: str) -> bool:
        return self.path(namespace, name).exists()

    def unique_name(self, namespace: str, proposed: str) -> str:
        """First of ``name.ext``, ``name-1.ext``, ``name-2.ext``... not yet present."""
        name = sanitize_file_name(proposed)
        if not self.exists(namespace, name):
            return name
        stem, ext = _split_name(name)
        counter = 1
        while True:
            candidate = f"{stem}-{counter}{ext}"
            if not self.exists(namespace, candidate):
                return candidate
            counter += 1

    def write(self, namespace: str, name: str, data: bytes) -> Path:
        """Create ``name`` with ``data``. Raises FileExistsError if the name is already taken."""
        directory = self._namespace_dir(namespace)
        directory.mkdir(parents=True, exist_ok=True)
        dest = directory / name
        fd = os.open(dest, os.O_WRONLY | os.O_CREAT | os.O_EXCL, FILE_MODE)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
        except OSError:
            dest.unlink(missing_ok=True)
            raise
        # umask may have stripped bits from the create mode
        os.chmod(dest, FILE_MODE)
        return dest

    def delete(self, namespace: str, name: str) -> bool:
        dest = self.path(namespace, name)
        try:
            dest.unlink()
        except FileNotFoundError:
            return False
        return True

    def url(self, namespace: str, name: str) -> str:
        return f"{self.base_url}/{self._namespace_dir(namespace).name}/{name}"
