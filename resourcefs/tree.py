"""In-memory tree cache over the resource store's flat namespace.

Remote resource names are "/"-delimited (``new_/scripts/form.js``); the tree
turns them into directories and files. Directories exist only locally, files
carry the remote identifier once the resource has been persisted.

No content is cached here, only the shape of the namespace.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import IntEnum

from .exceptions import (
    EntryIsADirectoryError,
    EntryNotADirectoryError,
    EntryNotFoundError,
)

logger = logging.getLogger(__name__)


class FileType(IntEnum):
    """Kind of a tree entry."""

    FILE = 1
    DIRECTORY = 2


@dataclass
class FileNode:
    """A file; ``identifier`` is None until the first successful remote write."""

    identifier: str | None = None

    @property
    def type(self) -> FileType:
        return FileType.FILE

    @property
    def is_persisted(self) -> bool:
        return self.identifier is not None


@dataclass
class DirectoryNode:
    """A directory mapping child names (single segments) to nodes."""

    children: dict[str, "FileNode | DirectoryNode"] = field(default_factory=dict)

    @property
    def type(self) -> FileType:
        return FileType.DIRECTORY


Node = FileNode | DirectoryNode


def split_path(path: str) -> list[str]:
    """Split a path into segments, ignoring leading, trailing and doubled slashes."""
    return [part for part in path.replace("\\", "/").split("/") if part]


def join_path(segments: list[str]) -> str:
    """Build an absolute path from segments. No segments means the root."""
    return "/" + "/".join(segments)


def normalize_path(path: str) -> str:
    return join_path(split_path(path))


def parent_path(path: str) -> tuple[str, str]:
    """Split a path into (parent path, final segment).

    Raises:
        EntryNotFoundError: If the path is the root, which has no parent
    """
    segments = split_path(path)
    if not segments:
        raise EntryNotFoundError("The root has no parent", path)
    return join_path(segments[:-1]), segments[-1]


def is_same_or_descendant(path: str, ancestor: str) -> bool:
    """Check whether ``path`` equals ``ancestor`` or lies beneath it."""
    path_segments = split_path(path)
    ancestor_segments = split_path(ancestor)
    return path_segments[: len(ancestor_segments)] == ancestor_segments


class TreeCache:
    """Hierarchical index of directories and files.

    The root is always a directory. Mutations are plain dictionary updates, so
    callers decide when a change is safe to commit (after the remote call that
    backs it has succeeded).
    """

    def __init__(self):
        self.root = DirectoryNode()

    def __len__(self) -> int:
        return len(self.walk_files("/"))

    def clear(self) -> None:
        """Drop every entry below the root."""
        self.root.children.clear()

    def resolve(self, path: str) -> Node:
        """Walk from the root to the node at ``path``.

        Raises:
            EntryNotFoundError: If a segment is missing, or an intermediate
                segment is a file
        """
        node: Node = self.root
        for part in split_path(path):
            if not isinstance(node, DirectoryNode):
                raise EntryNotFoundError(f"No such file or directory: {path}", path)
            child = node.children.get(part)
            if child is None:
                raise EntryNotFoundError(f"No such file or directory: {path}", path)
            node = child
        return node

    def lookup(self, path: str) -> Node | None:
        """Like resolve(), but returns None for a missing path."""
        try:
            return self.resolve(path)
        except EntryNotFoundError:
            return None

    def exists(self, path: str) -> bool:
        return self.lookup(path) is not None

    def resolve_file(self, path: str) -> FileNode:
        node = self.resolve(path)
        if not isinstance(node, FileNode):
            raise EntryIsADirectoryError(f"Is a directory: {path}", path)
        return node

    def resolve_directory(self, path: str) -> DirectoryNode:
        node = self.resolve(path)
        if not isinstance(node, DirectoryNode):
            raise EntryNotADirectoryError(f"Not a directory: {path}", path)
        return node

    def insert(self, path: str, identifier: str | None = None) -> bool:
        """Insert or update the file at ``path``.

        Intermediate directories are created as needed. A name that would have
        to descend through an existing file, or replace an existing directory,
        is skipped so a malformed remote name cannot corrupt the tree.

        Args:
            path: File path, e.g. ``/new_/scripts/form.js``
            identifier: Remote identifier, or None for a local placeholder

        Returns:
            True if the file node was written, False if the name was skipped
        """
        segments = split_path(path)
        if not segments:
            logger.debug(f"Skipping empty resource name: {path!r}")
            return False

        directory = self.root
        for part in segments[:-1]:
            child = directory.children.get(part)
            if child is None:
                child = DirectoryNode()
                directory.children[part] = child
            elif not isinstance(child, DirectoryNode):
                logger.debug(f"Skipping {path}: '{part}' is a file")
                return False
            directory = child

        name = segments[-1]
        existing = directory.children.get(name)
        if isinstance(existing, DirectoryNode):
            logger.debug(f"Skipping {path}: a directory with that name exists")
            return False
        if isinstance(existing, FileNode):
            existing.identifier = identifier
        else:
            directory.children[name] = FileNode(identifier=identifier)
        return True

    def make_directory(self, path: str) -> DirectoryNode:
        """Ensure a directory exists at ``path``, creating parents as needed.

        Raises:
            EntryNotADirectoryError: If a segment along the way is a file
        """
        directory = self.root
        for part in split_path(path):
            child = directory.children.get(part)
            if child is None:
                child = DirectoryNode()
                directory.children[part] = child
            elif not isinstance(child, DirectoryNode):
                raise EntryNotADirectoryError(f"Not a directory: {path}", path)
            directory = child
        return directory

    def remove(self, path: str) -> Node:
        """Detach the entry at ``path`` from its parent and return it.

        Raises:
            EntryNotFoundError: If the path does not resolve
        """
        parent, name = parent_path(path)
        directory = self.resolve_directory(parent)
        node = directory.children.pop(name, None)
        if node is None:
            raise EntryNotFoundError(f"No such file or directory: {path}", path)
        return node

    def list(self, path: str) -> list[tuple[str, FileType]]:
        """List the immediate children of a directory, sorted by name.

        Raises:
            EntryNotFoundError: If the path does not resolve
            EntryNotADirectoryError: If the path names a file
        """
        directory = self.resolve_directory(path)
        return [(name, child.type) for name, child in sorted(directory.children.items())]

    def walk_files(self, path: str) -> list[tuple[str, FileNode]]:
        """Collect every file at or below ``path``, depth-first.

        Returns:
            List of (absolute path, node) pairs
        """
        node = self.resolve(path)
        base = normalize_path(path)
        if isinstance(node, FileNode):
            return [(base, node)]

        files = []
        for name, child in sorted(node.children.items()):
            child_path = f"{base.rstrip('/')}/{name}"
            if isinstance(child, DirectoryNode):
                files.extend(self.walk_files(child_path))
            else:
                files.append((child_path, child))
        return files

    def iter_directories(self, path: str) -> list[str]:
        """Collect the absolute paths of every directory below ``path``, depth-first."""
        directory = self.resolve_directory(path)
        base = normalize_path(path).rstrip("/")
        found = []
        for name, child in sorted(directory.children.items()):
            if isinstance(child, DirectoryNode):
                child_path = f"{base}/{name}"
                found.append(child_path)
                found.extend(self.iter_directories(child_path))
        return found

    def snapshot(self) -> dict[str, str | None]:
        """Flatten the tree into {file path: identifier}."""
        return {path: node.identifier for path, node in self.walk_files("/")}
