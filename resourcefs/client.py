"""HTTP client for the resource store's Web API."""

import base64
import logging
import re
from dataclasses import dataclass
from typing import AsyncIterator
from xml.sax.saxutils import escape

import httpx

from .connection import ConnectionContext
from .exceptions import UnavailableError
from .resource_types import WebResourceType

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "v9.2"

# OData-EntityId: https://org.crm.dynamics.com/api/data/v9.2/webresourceset(<id>)
ENTITY_ID_PATTERN = re.compile(r"\(([^()]+)\)\s*$")


@dataclass
class WebResource:
    """One entry of the resource listing."""

    id: str
    name: str


@dataclass
class WebResourceContent:
    """Decoded content of a resource together with its declared type."""

    content: bytes
    resource_type: WebResourceType | None = None


def build_publish_xml(identifiers: list[str]) -> str:
    """Build the PublishXml parameter naming the given web resources."""
    entries = "".join(
        f"<webresource>{escape(identifier)}</webresource>" for identifier in identifiers
    )
    return f"<importexportxml><webresources>{entries}</webresources></importexportxml>"


def parse_entity_id(header: str | None) -> str | None:
    """Extract the identifier from an OData-EntityId header value."""
    if not header:
        return None
    match = ENTITY_ID_PATTERN.search(header)
    return match.group(1) if match else None


class ResourceStoreClient:
    """Client for the ``webresourceset`` endpoints of a resource store."""

    def __init__(
        self,
        connection: ConnectionContext,
        api_version: str = DEFAULT_API_VERSION,
        timeout: float = 30,
        page_size: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize client.

        Args:
            connection: Token and API endpoint to use
            api_version: Web API version segment
            timeout: Request timeout in seconds
            page_size: Preferred listing page size (server default if None)
            transport: Optional httpx transport, mainly for tests
        """
        self.connection = connection
        self.base_url = f"{connection.api_url}/api/data/{api_version}"
        self.page_size = page_size

        self.client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {connection.token}",
                "Accept": "application/json",
                "OData-MaxVersion": "4.0",
                "OData-Version": "4.0",
            },
        )

    def _resource_url(self, identifier: str) -> str:
        return f"{self.base_url}/webresourceset({identifier})"

    async def _request(
        self, method: str, url: str, action: str, path: str | None = None, **kwargs
    ) -> httpx.Response:
        """Send a request and convert transport or status failures.

        Raises:
            UnavailableError: The request failed or returned a non-success status
        """
        logger.debug(f"{method} {url}")
        try:
            response = await self.client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise UnavailableError(
                f"Failed to {action}: HTTP {status}", path, status_code=status
            ) from e
        except httpx.HTTPError as e:
            raise UnavailableError(f"Failed to {action}: {e}", path) from e
        return response

    @staticmethod
    def _json(response: httpx.Response, action: str, path: str | None = None) -> dict:
        """Parse a JSON object body.

        Raises:
            UnavailableError: The body is not a JSON object
        """
        try:
            data = response.json()
        except ValueError as e:
            raise UnavailableError(
                f"Failed to {action}: response is not JSON", path
            ) from e
        if not isinstance(data, dict):
            raise UnavailableError(f"Failed to {action}: unexpected response", path)
        return data

    async def iter_pages(self) -> AsyncIterator[list[WebResource]]:
        """Yield listing pages, following next links one page at a time.

        Raises:
            UnavailableError: Any page request failed
        """
        url: str | None = f"{self.base_url}/webresourceset"
        params: dict | None = {"$select": "webresourceid,name"}
        headers = {}
        if self.page_size:
            headers["Prefer"] = f"odata.maxpagesize={self.page_size}"

        while url:
            response = await self._request(
                "GET", url, "list web resources", params=params, headers=headers
            )
            data = self._json(response, "list web resources")
            yield [
                WebResource(id=item["webresourceid"], name=item["name"])
                for item in data.get("value", [])
                if item.get("webresourceid") and item.get("name")
            ]
            # The next link already carries the query string
            url = data.get("@odata.nextLink")
            params = None

    async def list_resources(self) -> list[WebResource]:
        """Fetch the complete listing."""
        resources = []
        async for page in self.iter_pages():
            resources.extend(page)
        return resources

    async def get_content(
        self, identifier: str, path: str | None = None
    ) -> WebResourceContent:
        """Read and decode a resource's content.

        Args:
            identifier: Resource identifier
            path: Filesystem path, for error reporting

        Returns:
            WebResourceContent with decoded bytes and declared type

        Raises:
            UnavailableError: The fetch failed or the body could not be decoded
        """
        response = await self._request(
            "GET",
            self._resource_url(identifier),
            "fetch web resource",
            path,
            params={"$select": "content,webresourcetype"},
        )
        data = self._json(response, "fetch web resource", path)
        try:
            content = base64.b64decode(data.get("content") or "", validate=True)
        except ValueError as e:
            raise UnavailableError(
                "Failed to fetch web resource: content is not valid base64", path
            ) from e
        try:
            resource_type = WebResourceType(data.get("webresourcetype"))
        except ValueError:
            resource_type = None
        return WebResourceContent(content=content, resource_type=resource_type)

    async def create_resource(
        self,
        name: str,
        display_name: str,
        resource_type: WebResourceType,
        content: bytes,
        path: str | None = None,
    ) -> str:
        """Create a resource and return its identifier.

        The identifier is read from the response body, or from the
        OData-EntityId header when the body does not carry it.

        Raises:
            UnavailableError: Creation failed or no identifier was returned
        """
        response = await self._request(
            "POST",
            f"{self.base_url}/webresourceset",
            "create web resource",
            path,
            json={
                "name": name,
                "displayname": display_name,
                "webresourcetype": int(resource_type),
                "content": base64.b64encode(content).decode("ascii"),
            },
            headers={"Prefer": "return=representation"},
        )

        identifier = None
        if response.content:
            try:
                identifier = response.json().get("webresourceid")
            except ValueError:
                identifier = None
        if not identifier:
            identifier = parse_entity_id(response.headers.get("OData-EntityId"))
        if not identifier:
            raise UnavailableError(
                f"Created web resource {name} but no identifier was returned", path
            )

        logger.debug(f"Created web resource {name} ({identifier})")
        return identifier

    async def update_content(
        self, identifier: str, content: bytes, path: str | None = None
    ) -> None:
        """Replace a resource's content."""
        await self._request(
            "PATCH",
            self._resource_url(identifier),
            "update web resource",
            path,
            json={"content": base64.b64encode(content).decode("ascii")},
        )

    async def delete_resource(self, identifier: str, path: str | None = None) -> None:
        """Delete a resource by identifier."""
        await self._request(
            "DELETE", self._resource_url(identifier), "delete web resource", path
        )

    async def publish(self, identifiers: list[str], path: str | None = None) -> None:
        """Publish pending changes for the given resources."""
        if not identifiers:
            return
        await self._request(
            "POST",
            f"{self.base_url}/PublishXml",
            "publish web resources",
            path,
            json={"ParameterXml": build_publish_xml(identifiers)},
        )

    async def close(self):
        """Close the client."""
        await self.client.aclose()

    async def __aenter__(self):
        """Context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        await self.close()
