"""Editable filesystem view of a remote web resource store.

This package provides:
- ResourceFileSystem: filesystem operations translated into store calls
- TreeCache: the in-memory hierarchy built from resource names
- ResourceStoreClient: HTTP client for the store's Web API
- ResourceFSConfig: configuration and credentials
"""

from resourcefs.client import ResourceStoreClient, WebResource, WebResourceContent
from resourcefs.config import ResourceFSConfig, load_config
from resourcefs.connection import (
    ConnectionContext,
    CredentialProvider,
    StaticCredentialProvider,
)
from resourcefs.events import EventEmitter, FileChangeEvent, FileChangeType
from resourcefs.exceptions import (
    ConfigError,
    EntryExistsError,
    EntryIsADirectoryError,
    EntryNotADirectoryError,
    EntryNotFoundError,
    NoPermissionsError,
    ResourceFSError,
    UnavailableError,
)
from resourcefs.filesystem import FileStat, ResourceFileSystem
from resourcefs.oplog import OperationLog
from resourcefs.resource_types import WebResourceType, infer_resource_type
from resourcefs.tree import DirectoryNode, FileNode, FileType, TreeCache

__all__ = [
    # Filesystem
    "ResourceFileSystem",
    "FileStat",
    "TreeCache",
    "DirectoryNode",
    "FileNode",
    "FileType",
    # Store client
    "ResourceStoreClient",
    "WebResource",
    "WebResourceContent",
    "WebResourceType",
    "infer_resource_type",
    # Connection and config
    "ConnectionContext",
    "CredentialProvider",
    "StaticCredentialProvider",
    "ResourceFSConfig",
    "load_config",
    # Events and diagnostics
    "EventEmitter",
    "FileChangeEvent",
    "FileChangeType",
    "OperationLog",
    # Exceptions
    "ResourceFSError",
    "EntryNotFoundError",
    "EntryNotADirectoryError",
    "EntryIsADirectoryError",
    "EntryExistsError",
    "NoPermissionsError",
    "UnavailableError",
    "ConfigError",
]
