import asyncio
import weakref
from pathlib import Path
from typing import Protocol


class WorkspaceFileSystem(Protocol):
    def list_files(self, directory: str) -> list[str]: ...

    def read_file(self, path: str) -> str: ...

    def write_file(self, path: str, text: str) -> None: ...

    def exists(self, path: str) -> bool: ...

    def is_file(self, path: str) -> bool: ...

    def mkdir_recursive(self, path: str) -> None: ...


class LocalFileSystem:
    """WorkspaceFileSystem over the local disk. Paths are used as given."""

    def list_files(self, directory: str) -> list[str]:
        return sorted(entry.name for entry in Path(directory).iterdir() if entry.is_file())

    def read_file(self, path: str) -> str:
        return Path(path).read_text(encoding="utf-8")

    def write_file(self, path: str, text: str) -> None:
        Path(path).write_text(text, encoding="utf-8")

    def exists(self, path: str) -> bool:
        return Path(path).exists()

    def is_file(self, path: str) -> bool:
        return Path(path).is_file()

    def mkdir_recursive(self, path: str) -> None:
        Path(path).mkdir(parents=True, exist_ok=True)


class PathLocks:
    """Advisory asyncio locks keyed by resolved destination path.

    A lock lives only while a writer holds or awaits it.
    """

    def __init__(self):
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def __len__(self) -> int:
        return len(self._locks)

    def for_path(self, path: str) -> asyncio.Lock:
        key = str(Path(path).resolve())
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock
