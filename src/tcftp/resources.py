from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from .constants import EMPTY_LISTING
from .errors import DirectoryReadFailed, FileNotFound


@dataclass(frozen=True, slots=True)
class ResourceProvider:
    """Serves names and bytes from a single root directory."""

    root: Path = field(default_factory=Path.cwd)

    def list_directory(self) -> bytes:
        names: list[str] = []
        try:
            with os.scandir(self.root) as it:
                for entry in it:
                    if entry.is_file(follow_symlinks=False):
                        names.append(entry.name)
        except OSError as exc:
            logging.error("cannot read directory %s: %s", self.root, exc)
            raise DirectoryReadFailed(str(exc)) from exc

        if not names:
            return EMPTY_LISTING
        listing = "".join(f"{name}\n" for name in names).encode("utf-8", "surrogateescape")
        logging.debug("listing of %s: %d files, %d bytes", self.root, len(names), len(listing))
        return listing

    def resolve(self, name: str) -> Path:
        try:
            root = self.root.resolve()
            path = (root / name).resolve()
        except (OSError, ValueError) as exc:
            # ValueError covers names with an embedded NUL
            raise FileNotFound(f"cannot resolve {name!r}: {exc}") from exc
        # symlinks are followed first, so a link pointing outside is rejected too
        if path != root and root not in path.parents:
            raise FileNotFound(f"{name!r} escapes {root}")
        return path

    def read_file(self, name: str) -> bytes:
        path = self.resolve(name)
        try:
            with open(path, "rb") as f:
                size = os.fstat(f.fileno()).st_size
                data = f.read()
        except (OSError, ValueError) as exc:
            logging.error("cannot read file %s: %s", path, exc)
            raise FileNotFound(str(exc)) from exc

        if len(data) != size:
            raise FileNotFound(f"{name!r}: read {len(data)} of {size} bytes")
        logging.debug("read %s (%d bytes)", path, size)
        return data
