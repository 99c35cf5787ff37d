"""Vault backed by a directory on the local file system."""

import asyncio
from collections.abc import Callable
from pathlib import Path

from flarechat.history.frontmatter import Frontmatter, encode, split_document
from flarechat.vault.base import FileHandle, Vault, VaultListing, join_path


class LocalVault(Vault):
    """Thin async wrapper around pathlib. Blocking calls run in a worker thread."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).resolve()
        self._cache: dict[str, tuple[int, str]] = {}  # path -> (mtime_ns, text)

    @property
    def root(self) -> Path:
        return self._root

    def _resolve(self, path: str) -> Path:
        full = (self._root / path.strip("/")).resolve()
        if full != self._root and not full.is_relative_to(self._root):
            raise ValueError(f"Path escapes vault root: {path}")
        return full

    def _write(self, path: str, text: str) -> None:
        full = self._resolve(path)
        full.write_text(text, encoding="utf-8", newline="")
        self._cache[path] = (full.stat().st_mtime_ns, text)

    def _read(self, path: str) -> str:
        full = self._resolve(path)
        text = full.read_text(encoding="utf-8")
        self._cache[path] = (full.stat().st_mtime_ns, text)
        return text

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(self._resolve(path).exists)

    async def list(self, folder: str) -> VaultListing:
        def _list() -> VaultListing:
            listing = VaultListing()
            for child in sorted(self._resolve(folder).iterdir()):
                child_path = join_path(folder, child.name)
                if child.is_dir():
                    listing.folders.append(child_path)
                else:
                    listing.files.append(child_path)
            return listing

        return await asyncio.to_thread(_list)

    async def create(self, path: str, text: str) -> FileHandle:
        def _create() -> None:
            full = self._resolve(path)
            if full.exists():
                raise FileExistsError(f"File already exists: {path}")
            full.parent.mkdir(parents=True, exist_ok=True)
            self._write(path, text)

        await asyncio.to_thread(_create)
        return FileHandle(path)

    async def read(self, handle: FileHandle) -> str:
        return await asyncio.to_thread(self._read, handle.path)

    async def cached_read(self, handle: FileHandle) -> str:
        def _cached() -> str:
            cached = self._cache.get(handle.path)
            if cached is not None and self._resolve(handle.path).stat().st_mtime_ns == cached[0]:
                return cached[1]
            return self._read(handle.path)

        return await asyncio.to_thread(_cached)

    async def modify(self, handle: FileHandle, text: str) -> None:
        def _modify() -> None:
            if not self._resolve(handle.path).is_file():
                raise FileNotFoundError(f"File not found: {handle.path}")
            self._write(handle.path, text)

        await asyncio.to_thread(_modify)

    async def update_frontmatter(
        self, handle: FileHandle, mutate: Callable[[Frontmatter], None]
    ) -> None:
        def _update() -> None:
            header, body = split_document(self._read(handle.path), path=handle.path)
            fm = Frontmatter.from_header(header)
            mutate(fm)
            self._write(handle.path, encode(fm) + body)

        await asyncio.to_thread(_update)

    async def rename(self, handle: FileHandle, new_path: str) -> FileHandle:
        def _rename() -> None:
            source = self._resolve(handle.path)
            target = self._resolve(new_path)
            if target.exists():
                raise FileExistsError(f"File already exists: {new_path}")
            target.parent.mkdir(parents=True, exist_ok=True)
            source.rename(target)
            self._cache.pop(handle.path, None)

        await asyncio.to_thread(_rename)
        return FileHandle(new_path)

    async def create_folder(self, path: str) -> None:
        await asyncio.to_thread(self._resolve(path).mkdir, parents=True, exist_ok=True)

    async def delete(self, handle: FileHandle) -> None:
        await asyncio.to_thread(self._resolve(handle.path).unlink)
        self._cache.pop(handle.path, None)
