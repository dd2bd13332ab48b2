"""
Fixtures for resourcefs tests.
"""

import pytest

from resourcefs.connection import ConnectionContext, StaticCredentialProvider
from resourcefs.filesystem import ResourceFileSystem

from fake_store import API_URL, HOST, FakeResourceStore


@pytest.fixture
def store():
    """Create an empty fake resource store."""
    return FakeResourceStore()


@pytest.fixture
def credentials():
    """Credential provider knowing the test host."""
    return StaticCredentialProvider(
        {HOST: ConnectionContext(token="test-token", api_url=API_URL)}
    )


@pytest.fixture
def fs(store, credentials):
    """Filesystem wired to the fake store (not yet connected)."""
    return ResourceFileSystem(
        credentials, publish_on_save=False, transport=store.transport()
    )
