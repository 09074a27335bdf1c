"""Sandboxed file access beneath the storage root."""
from __future__ import annotations

import os
import posixpath
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Iterator, List

from .errors import AccessError, NotFound

SYSTEM_VERSION = "1.0.0"


@dataclass
class OpenedFile:
    """An open handle plus the stat fields needed for range/conditional serving."""

    stream: BinaryIO
    name: str
    size: int
    modified: datetime

    def close(self) -> None:
        self.stream.close()

    def __enter__(self) -> "OpenedFile":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class SandboxedStorage:
    def __init__(self, root: str | os.PathLike):
        self.root = Path(root).resolve()

    def resolve(self, relative_name: str) -> Path:
        """Map ``relative_name`` to a path beneath the root.

        Works like a base-path filesystem: the name is cleaned as if it were
        absolute, so ``..`` can never climb above the root and a leading
        ``/`` means the root itself. Symlinks pointing outside are refused.
        """
        if relative_name is None or "\x00" in relative_name:
            raise NotFound(str(relative_name))
        name = relative_name.replace("\\", "/") if os.sep == "\\" else relative_name
        cleaned = posixpath.normpath("/" + name).lstrip("/")
        if not cleaned or cleaned == ".":
            raise NotFound(relative_name)
        candidate = self.root.joinpath(*cleaned.split("/"))
        try:
            resolved = candidate.resolve()
        except (OSError, RuntimeError) as exc:
            raise AccessError(relative_name, exc) from exc
        if resolved != self.root and self.root not in resolved.parents:
            raise NotFound(relative_name)
        return resolved

    def open_file(self, relative_name: str) -> OpenedFile:
        path = self.resolve(relative_name)
        try:
            stream = open(path, "rb")
        except (FileNotFoundError, NotADirectoryError, IsADirectoryError) as exc:
            raise NotFound(relative_name) from exc
        except OSError as exc:
            raise AccessError(relative_name, exc) from exc
        try:
            stat = os.fstat(stream.fileno())
        except OSError as exc:
            stream.close()
            raise AccessError(relative_name, exc) from exc
        return OpenedFile(
            stream=stream,
            name=path.name,
            size=stat.st_size,
            modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )

    def exists(self, relative_name: str) -> bool:
        try:
            return self.resolve(relative_name).is_file()
        except (NotFound, AccessError):
            return False

    def iter_files(self) -> Iterator[str]:
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames.sort()
            for filename in sorted(filenames):
                full = Path(dirpath) / filename
                if not full.is_file():
                    continue
                yield full.relative_to(self.root).as_posix()

    def list_files(self) -> List[str]:
        return list(self.iter_files())
