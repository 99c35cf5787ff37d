"""Abstract file collaborator ("vault") and shared path types.

Paths are vault-relative POSIX strings such as ``FLAREai/history/chat.md``.
Each call is atomic on its own; nothing here spans more than one call.
"""

import posixpath
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from flarechat.history.frontmatter import Frontmatter


def join_path(folder: str, name: str) -> str:
    folder = folder.strip("/")
    return f"{folder}/{name}" if folder else name


@dataclass(frozen=True)
class FileHandle:
    path: str

    @property
    def name(self) -> str:
        return posixpath.basename(self.path)

    @property
    def basename(self) -> str:
        """File name without extension."""
        return posixpath.splitext(self.name)[0]

    @property
    def parent(self) -> str:
        return posixpath.dirname(self.path)


@dataclass
class VaultListing:
    files: list[str] = field(default_factory=list)
    folders: list[str] = field(default_factory=list)


class Vault(ABC):
    """Async file operations the history store depends on."""

    @abstractmethod
    async def exists(self, path: str) -> bool: ...

    @abstractmethod
    async def list(self, folder: str) -> VaultListing:
        """Direct children of a folder, as vault paths."""
        ...

    @abstractmethod
    async def create(self, path: str, text: str) -> FileHandle:
        """Create a new file. Raises FileExistsError if the path is taken."""
        ...

    @abstractmethod
    async def read(self, handle: FileHandle) -> str: ...

    @abstractmethod
    async def cached_read(self, handle: FileHandle) -> str: ...

    @abstractmethod
    async def modify(self, handle: FileHandle, text: str) -> None: ...

    @abstractmethod
    async def update_frontmatter(
        self, handle: FileHandle, mutate: Callable[["Frontmatter"], None]
    ) -> None:
        """Decode the header, let ``mutate`` edit it in place, write it back.

        The document body is left untouched.
        """
        ...

    @abstractmethod
    async def rename(self, handle: FileHandle, new_path: str) -> FileHandle:
        """Move a file. Raises FileExistsError if ``new_path`` is taken."""
        ...

    @abstractmethod
    async def create_folder(self, path: str) -> None: ...

    @abstractmethod
    async def delete(self, handle: FileHandle) -> None: ...
