"""Virtual filesystem over a flat, remote resource store.

The store only knows resources with opaque identifiers and "/"-delimited
names. ResourceFileSystem keeps a TreeCache of those names and translates
filesystem operations into store calls:

- reload: page through the listing and rebuild the tree
- read_file: fetch and decode content on demand
- write_file: PATCH existing resources, POST new ones, keep empty files local
- delete: DELETE + publish, then detach from the tree
- rename: the store has no move, so recreate under the new name, delete the
  old resource and publish

Tree changes are committed only after the remote call backing them has
succeeded, so a failure leaves the tree matching what the store holds.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Coroutine, TypeVar

import httpx

from .client import DEFAULT_API_VERSION, ResourceStoreClient
from .config import DEFAULT_EXCLUDED_PREFIXES, ResourceFSConfig
from .connection import ConnectionContext, CredentialProvider
from .events import EventEmitter, FileChangeEvent, FileChangeType
from .exceptions import (
    EntryExistsError,
    EntryIsADirectoryError,
    EntryNotADirectoryError,
    EntryNotFoundError,
    NoPermissionsError,
    UnavailableError,
)
from .oplog import OperationLog
from .resource_types import extension_of, infer_resource_type, normalize_extension
from .tree import (
    DirectoryNode,
    FileNode,
    FileType,
    TreeCache,
    is_same_or_descendant,
    normalize_path,
    parent_path,
    split_path,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (old path, new path, number of files affected) -> proceed?
ConfirmCallback = Callable[[str, str, int], bool | Awaitable[bool]]


@dataclass
class FileStat:
    """Stat result. The listing carries no timestamps or sizes, so they are 0."""

    type: FileType
    ctime: int = 0
    mtime: int = 0
    size: int = 0


def resource_name(path: str) -> str:
    """Remote resource name for a filesystem path (no leading slash)."""
    return "/".join(split_path(path))


class ResourceFileSystem:
    """Editable, hierarchical view of a remote resource store."""

    def __init__(
        self,
        credential_provider: CredentialProvider,
        *,
        filter_extensions: list[str] | None = None,
        excluded_prefixes: list[str] | None = None,
        api_version: str = DEFAULT_API_VERSION,
        page_size: int | None = None,
        timeout: float = 30.0,
        publish_on_save: bool = True,
        operation_log: OperationLog | None = None,
        confirm_directory_rename: ConfirmCallback | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the filesystem.

        Args:
            credential_provider: Resolves hosts into connections
            filter_extensions: Extensions to show; empty shows everything
            excluded_prefixes: Resource name prefixes that are never shown
            api_version: Web API version segment
            page_size: Preferred listing page size
            timeout: HTTP timeout in seconds
            publish_on_save: Publish after every successful write (best effort)
            operation_log: Optional JSONL log of remote operations
            confirm_directory_rename: Asked before renaming a directory
            transport: Optional httpx transport passed to the store client
        """
        self.credential_provider = credential_provider
        self.filter_extensions: set[str] = set()
        self.set_filter(filter_extensions or [])
        self.excluded_prefixes = [
            prefix.lower()
            for prefix in (
                DEFAULT_EXCLUDED_PREFIXES
                if excluded_prefixes is None
                else excluded_prefixes
            )
        ]
        self.api_version = api_version
        self.page_size = page_size
        self.timeout = timeout
        self.publish_on_save = publish_on_save
        self.operation_log = operation_log
        self.confirm_directory_rename = confirm_directory_rename
        self.transport = transport

        self.tree = TreeCache()
        self.on_did_change = EventEmitter()
        self.connection: ConnectionContext | None = None
        self.last_reload_duplicates: list[str] = []

        self._client: ResourceStoreClient | None = None
        self._stale = True
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: ResourceFSConfig, **kwargs) -> "ResourceFileSystem":
        """Build a filesystem from a loaded configuration."""
        options = dict(
            filter_extensions=config.filter_extensions,
            excluded_prefixes=config.excluded_prefixes,
            api_version=config.api_version,
            page_size=config.page_size,
            timeout=config.timeout,
            publish_on_save=config.publish_on_save,
            operation_log=config.create_operation_log(),
        )
        options.update(kwargs)
        return cls(config.credential_provider(), **options)

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    # Connection management

    async def connect(self, host: str) -> ConnectionContext:
        """Connect to the store for ``host``.

        Connecting to a different host discards the tree; it is reloaded
        lazily on the next access.

        Raises:
            UnavailableError: If the credential provider has nothing for the host
        """
        connection = await self.credential_provider.get_connection(host)

        async with self._lock:
            if self.connection is None or self.connection.host != connection.host:
                self.tree.clear()
                self._stale = True
            if self._client is not None:
                await self._client.close()

            self.connection = connection
            self._client = ResourceStoreClient(
                connection,
                api_version=self.api_version,
                timeout=self.timeout,
                page_size=self.page_size,
                transport=self.transport,
            )

        logger.info(f"Connected to {connection.host}")
        return connection

    async def disconnect(self) -> None:
        """Drop the connection and the tree."""
        async with self._lock:
            if self._client is not None:
                await self._client.close()
            self._client = None
            self.connection = None
            self.tree.clear()
            self._stale = True

    async def close(self) -> None:
        await self.disconnect()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def set_filter(self, extensions: list[str]) -> None:
        """Restrict the tree to the given extensions (empty allows all).

        The tree is rebuilt on the next access.
        """
        self.filter_extensions = {
            normalize_extension(ext) for ext in extensions if normalize_extension(ext)
        }
        self._stale = True

    def _require_client(self, path: str | None = None) -> ResourceStoreClient:
        if self._client is None:
            raise UnavailableError("Not connected", path)
        return self._client

    # Population

    def _is_excluded(self, name: str) -> bool:
        lowered = name.lower()
        return any(lowered.startswith(prefix) for prefix in self.excluded_prefixes)

    def _passes_filter(self, name: str) -> bool:
        if not self.filter_extensions:
            return True
        return extension_of(name) in self.filter_extensions

    async def reload(self) -> int:
        """Rebuild the tree from the remote listing.

        Returns:
            Number of files in the new tree

        Raises:
            UnavailableError: Not connected, or a listing page failed. The
                previous tree is kept in that case.
        """
        async with self._lock:
            return await self._reload()

    async def _reload(self) -> int:
        client = self._require_client()

        fresh = TreeCache()
        duplicates = []
        skipped = 0
        async for page in client.iter_pages():
            for resource in page:
                if self._is_excluded(resource.name) or not self._passes_filter(
                    resource.name
                ):
                    continue
                path = normalize_path(resource.name)
                if isinstance(fresh.lookup(path), FileNode):
                    logger.warning(f"Duplicate resource name {path} ({resource.id})")
                    duplicates.append(path)
                if not fresh.insert(path, resource.id):
                    skipped += 1

        self.tree = fresh
        self._stale = False
        self.last_reload_duplicates = duplicates

        count = len(fresh)
        logger.info(
            f"Loaded {count} web resources from {client.connection.host}"
            + (f" ({skipped} conflicting names skipped)" if skipped else "")
        )
        self.on_did_change.fire([FileChangeEvent(FileChangeType.CHANGED, "/")])
        return count

    async def _ensure_loaded(self) -> None:
        if self._stale and self._client is not None:
            await self._reload()

    # Bookkeeping

    def _log_operation(
        self,
        op_type: str,
        path: str,
        status: str,
        error: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        if self.operation_log is None:
            return
        try:
            self.operation_log.log_operation(op_type, path, status, error, metadata)
        except OSError as e:
            logger.warning(f"Could not record {op_type} of {path}: {e}")

    async def _remote(
        self, op_type: str, path: str, call: Coroutine[Any, Any, T], **metadata
    ) -> T:
        """Await a store call and record its outcome in the operation log."""
        try:
            result = await call
        except UnavailableError as e:
            logger.error(f"{op_type} {path} failed: {e}")
            self._log_operation(op_type, path, "failed", str(e), metadata)
            raise
        if isinstance(result, str):
            metadata.setdefault("identifier", result)
        self._log_operation(op_type, path, "success", metadata=metadata)
        return result

    async def _publish_best_effort(self, identifier: str, path: str) -> None:
        client = self._require_client(path)
        try:
            await self._remote(
                "publish", path, client.publish([identifier], path), identifier=identifier
            )
        except UnavailableError as e:
            logger.warning(f"Saved {path} but publishing failed: {e}")

    def _check_parent(self, path: str) -> None:
        """Fail if any ancestor of ``path`` is a file."""
        parent, _ = parent_path(path)
        node = self.tree.root
        for part in split_path(parent):
            child = node.children.get(part)
            if child is None:
                return
            if isinstance(child, FileNode):
                raise EntryNotADirectoryError(f"Not a directory: {parent}", path)
            node = child

    # Read-only operations

    async def stat(self, path: str) -> FileStat:
        async with self._lock:
            await self._ensure_loaded()
            return FileStat(type=self.tree.resolve(path).type)

    async def read_directory(self, path: str) -> list[tuple[str, FileType]]:
        async with self._lock:
            await self._ensure_loaded()
            return self.tree.list(path)

    async def read_file(self, path: str) -> bytes:
        """Return the content of a file.

        Files that only exist locally read as empty.

        Raises:
            EntryNotFoundError: No such file
            EntryIsADirectoryError: The path is a directory
            UnavailableError: Not connected, or the fetch failed
        """
        async with self._lock:
            await self._ensure_loaded()
            identifier = self.tree.resolve_file(path).identifier

        if identifier is None:
            return b""

        client = self._require_client(path)
        fetched = await client.get_content(identifier, path)
        return fetched.content

    # Mutations

    async def write_file(
        self,
        path: str,
        content: bytes,
        *,
        create: bool = True,
        overwrite: bool = True,
    ) -> None:
        """Write a file, creating it remotely when it has content.

        Empty content never reaches the store: a new empty file stays a local
        placeholder, and an empty write to a stored file is ignored.

        Raises:
            EntryNotFoundError: Missing path and ``create`` is False
            EntryExistsError: Existing path, ``create`` set, ``overwrite`` not
            EntryIsADirectoryError: The path is a directory
            EntryNotADirectoryError: An ancestor is a file
            UnavailableError: Not connected, or the store call failed
        """
        path = normalize_path(path)
        async with self._lock:
            await self._ensure_loaded()
            if path == "/":
                raise EntryIsADirectoryError("Is a directory: /", path)
            self._check_parent(path)

            node = self.tree.lookup(path)
            if isinstance(node, DirectoryNode):
                raise EntryIsADirectoryError(f"Is a directory: {path}", path)
            if node is None and not create:
                raise EntryNotFoundError(f"No such file or directory: {path}", path)
            if node is not None and create and not overwrite:
                raise EntryExistsError(f"File exists: {path}", path)

            change = FileChangeType.CREATED if node is None else FileChangeType.CHANGED

            if node is not None and node.identifier:
                if not content:
                    logger.debug(f"Ignoring empty write to {path}")
                    return
                identifier = node.identifier
                client = self._require_client(path)
                await self._remote(
                    "update",
                    path,
                    client.update_content(identifier, content, path),
                    identifier=identifier,
                    size=len(content),
                )
            elif not content:
                self.tree.insert(path, None)
                logger.debug(f"Created local placeholder {path}")
                self.on_did_change.fire([FileChangeEvent(change, path)])
                return
            else:
                client = self._require_client(path)
                identifier = await self._remote(
                    "create",
                    path,
                    client.create_resource(
                        resource_name(path),
                        split_path(path)[-1],
                        infer_resource_type(path),
                        content,
                        path,
                    ),
                    size=len(content),
                )
                self.tree.insert(path, identifier)

            if self.publish_on_save:
                await self._publish_best_effort(identifier, path)

        logger.info(f"Saved {path} ({len(content)} bytes)")
        self.on_did_change.fire([FileChangeEvent(change, path)])

    async def create_directory(self, path: str) -> None:
        """Create a local directory; it gains a remote presence through its files.

        Raises:
            EntryExistsError: The path exists
            EntryNotFoundError: The parent does not exist
            EntryNotADirectoryError: The parent is a file
        """
        path = normalize_path(path)
        async with self._lock:
            await self._ensure_loaded()
            if self.tree.exists(path):
                raise EntryExistsError(f"File exists: {path}", path)
            parent, _ = parent_path(path)
            self.tree.resolve_directory(parent)
            self.tree.make_directory(path)

        self.on_did_change.fire([FileChangeEvent(FileChangeType.CREATED, path)])

    async def delete(self, path: str) -> None:
        """Delete a file or directory.

        Stored files are deleted remotely and the deletion is published.
        Directories are removed from the tree only; resources below them stay
        in the store and reappear on the next reload.

        Raises:
            EntryNotFoundError: No such path
            NoPermissionsError: The path is the root
            UnavailableError: The remote delete or publish failed
        """
        path = normalize_path(path)
        async with self._lock:
            await self._ensure_loaded()
            if path == "/":
                raise NoPermissionsError("Cannot delete the root", path)

            node = self.tree.resolve(path)
            if isinstance(node, DirectoryNode):
                remaining = [p for p, f in self.tree.walk_files(path) if f.identifier]
                if remaining:
                    logger.warning(
                        f"Removing {path} locally; {len(remaining)} stored resources "
                        f"below it are not deleted remotely"
                    )
                self.tree.remove(path)
            elif node.identifier is None:
                self.tree.remove(path)
            else:
                identifier = node.identifier
                client = self._require_client(path)
                await self._remote(
                    "delete",
                    path,
                    client.delete_resource(identifier, path),
                    identifier=identifier,
                )
                self.tree.remove(path)
                try:
                    await self._remote(
                        "publish",
                        path,
                        client.publish([identifier], path),
                        identifier=identifier,
                    )
                finally:
                    self.on_did_change.fire(
                        [FileChangeEvent(FileChangeType.DELETED, path)]
                    )
                logger.info(f"Deleted {path}")
                return

        logger.info(f"Deleted {path}")
        self.on_did_change.fire([FileChangeEvent(FileChangeType.DELETED, path)])

    async def rename(
        self,
        old_path: str,
        new_path: str,
        *,
        overwrite: bool = False,
        confirm: bool | None = None,
    ) -> bool:
        """Rename a file or directory.

        Directory renames touch every stored file below the directory and
        need confirmation: ``confirm=True`` proceeds, ``confirm=False``
        declines, and None asks ``confirm_directory_rename`` (declining when
        there is no callback).

        Returns:
            True if the rename happened, False if a directory rename was declined

        Raises:
            EntryNotFoundError: The source does not exist
            EntryExistsError: The destination exists and ``overwrite`` is False,
                or the destination is a non-empty directory
            EntryIsADirectoryError: A file would replace a directory
            EntryNotADirectoryError: A directory would replace a file, or an
                ancestor of the destination is a file
            NoPermissionsError: Renaming the root, or a directory into itself
            UnavailableError: A store call failed; see the operation log for
                what was already done
        """
        old_path = normalize_path(old_path)
        new_path = normalize_path(new_path)
        if "/" in (old_path, new_path):
            raise NoPermissionsError("Cannot rename the root", old_path)

        async with self._lock:
            await self._ensure_loaded()
            node = self.tree.resolve(old_path)
            if old_path == new_path:
                return True
            self._check_parent(new_path)

            target = self.tree.lookup(new_path)
            if target is not None and not overwrite:
                raise EntryExistsError(f"File exists: {new_path}", new_path)

            if isinstance(node, FileNode):
                if isinstance(target, DirectoryNode):
                    raise EntryIsADirectoryError(
                        f"Is a directory: {new_path}", new_path
                    )
                await self._rename_file(old_path, new_path, node, target)
                return True

            if is_same_or_descendant(new_path, old_path):
                raise NoPermissionsError(
                    f"Cannot move {old_path} into itself", new_path
                )
            if isinstance(target, FileNode):
                raise EntryNotADirectoryError(f"Not a directory: {new_path}", new_path)
            if isinstance(target, DirectoryNode) and target.children:
                raise EntryExistsError(
                    f"Directory not empty: {new_path}", new_path
                )

            file_count = len(self.tree.walk_files(old_path))
            if not await self._confirm(old_path, new_path, file_count, confirm):
                logger.info(f"Rename of {old_path} to {new_path} was not confirmed")
                return False

            await self._rename_directory(old_path, new_path)
            return True

    async def _confirm(
        self, old_path: str, new_path: str, file_count: int, confirm: bool | None
    ) -> bool:
        if confirm is not None:
            return confirm
        if self.confirm_directory_rename is None:
            return False
        answer = self.confirm_directory_rename(old_path, new_path, file_count)
        if inspect.isawaitable(answer):
            answer = await answer
        return bool(answer)

    async def _rename_file(
        self,
        old_path: str,
        new_path: str,
        node: FileNode,
        target: FileNode | None = None,
    ) -> str | None:
        """Move one file, recreating it remotely when it is stored.

        Returns:
            Identifier of the file at its new path, None for a placeholder
        """
        events = [
            FileChangeEvent(FileChangeType.DELETED, old_path),
            FileChangeEvent(FileChangeType.CREATED, new_path, old_path=old_path),
        ]

        if node.identifier is None:
            # Nothing stored: an empty placeholder never blanks a stored target
            kept = target.identifier if target is not None else None
            self.tree.remove(old_path)
            self.tree.insert(new_path, kept)
            self.on_did_change.fire(events)
            return kept

        client = self._require_client(old_path)
        old_identifier = node.identifier
        fetched = await client.get_content(old_identifier, old_path)

        if target is not None and target.identifier:
            new_identifier = target.identifier
            await self._remote(
                "update",
                new_path,
                client.update_content(new_identifier, fetched.content, new_path),
                identifier=new_identifier,
                source=old_path,
            )
        else:
            resource_type = fetched.resource_type or infer_resource_type(new_path)
            new_identifier = await self._remote(
                "create",
                new_path,
                client.create_resource(
                    resource_name(new_path),
                    split_path(new_path)[-1],
                    resource_type,
                    fetched.content,
                    new_path,
                ),
                source=old_path,
            )
        self.tree.insert(new_path, new_identifier)

        try:
            await self._remote(
                "delete",
                old_path,
                client.delete_resource(old_identifier, old_path),
                identifier=old_identifier,
            )
        except UnavailableError:
            logger.error(
                f"Renamed {old_path} to {new_path} but the old resource "
                f"{old_identifier} could not be deleted; both now exist"
            )
            self.on_did_change.fire(
                [FileChangeEvent(FileChangeType.CREATED, new_path)]
            )
            raise
        self.tree.remove(old_path)

        try:
            await self._remote(
                "publish",
                new_path,
                client.publish([new_identifier], new_path),
                identifier=new_identifier,
            )
        finally:
            self.on_did_change.fire(events)

        self._log_operation(
            "rename",
            old_path,
            "success",
            metadata={
                "new_path": new_path,
                "old_identifier": old_identifier,
                "new_identifier": new_identifier,
            },
        )
        logger.info(f"Renamed {old_path} to {new_path} ({new_identifier})")
        return new_identifier

    async def _rename_directory(self, old_path: str, new_path: str) -> None:
        """Move every file below ``old_path`` depth-first, then the directory.

        Each file move is committed as it completes. A failure stops the walk
        and leaves the files moved so far at their new paths.
        """
        files = self.tree.walk_files(old_path)
        directories = self.tree.iter_directories(old_path)
        prefix = len(old_path)

        for file_path, file_node in files:
            await self._rename_file(
                file_path, new_path + file_path[prefix:], file_node
            )

        self.tree.make_directory(new_path)
        for directory in directories:
            self.tree.make_directory(new_path + directory[prefix:])
        self.tree.remove(old_path)

        logger.info(f"Renamed directory {old_path} to {new_path} ({len(files)} files)")
        self.on_did_change.fire(
            [
                FileChangeEvent(FileChangeType.DELETED, old_path),
                FileChangeEvent(FileChangeType.CREATED, new_path, old_path=old_path),
            ]
        )

    async def publish(self, path: str) -> list[str]:
        """Publish a stored file, or every stored file below a directory.

        Returns:
            The identifiers that were published

        Raises:
            EntryNotFoundError: No such path
            UnavailableError: Not connected, or the publish failed
        """
        client = self._require_client(path)
        async with self._lock:
            await self._ensure_loaded()
            identifiers = [
                node.identifier
                for _, node in self.tree.walk_files(path)
                if node.identifier
            ]

        if not identifiers:
            logger.info(f"Nothing to publish under {path}")
            return []

        await self._remote(
            "publish",
            normalize_path(path),
            client.publish(identifiers, path),
            identifiers=identifiers,
        )
        logger.info(f"Published {len(identifiers)} web resources under {path}")
        return identifiers
