from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import List


class StorageBackend(ABC):
    """
    Abstract interface for snapshot storage (local disk, object store, ...).
    Paths are relative, '/'-separated keys.
    """

    @abstractmethod
    def write_bytes(self, path: str, data: bytes) -> None:
        pass

    @abstractmethod
    def read_bytes(self, path: str) -> bytes:
        pass

    @abstractmethod
    def list_files(self, prefix: str, suffix: str = "") -> List[str]:
        """List keys under prefix ending with suffix."""
        pass

    @abstractmethod
    def exists(self, path: str) -> bool:
        pass

    @abstractmethod
    def delete(self, path: str) -> bool:
        """Remove a key. Returns False if it didn't exist."""
        pass


class LocalFileSystemStorage(StorageBackend):
    """
    Local filesystem implementation rooted at a directory.
    """

    def __init__(self, root: Path | str):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        # Prevent path traversal outside the root
        full_path = (self.root / path).resolve()
        if full_path != self.root and self.root not in full_path.parents:
            raise ValueError(f"Access denied: {path}")
        return full_path

    def write_bytes(self, path: str, data: bytes) -> None:
        p = self._resolve(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        # Write next to the target, then rename, so readers never see a torn file
        tmp = p.with_name(p.name + ".tmp")
        tmp.write_bytes(data)
        tmp.replace(p)

    def read_bytes(self, path: str) -> bytes:
        return self._resolve(path).read_bytes()

    def list_files(self, prefix: str, suffix: str = "") -> List[str]:
        p = self._resolve(prefix)
        if not p.exists():
            return []

        return sorted(
            f.relative_to(self.root).as_posix()
            for f in p.glob(f"*{suffix}")
            if f.is_file()
        )

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    def delete(self, path: str) -> bool:
        p = self._resolve(path)
        if not p.is_file():
            return False
        p.unlink()
        return True
