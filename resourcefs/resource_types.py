"""Web resource type codes and extension-based inference."""

from enum import IntEnum
from pathlib import PurePosixPath


class WebResourceType(IntEnum):
    """Type codes the resource store assigns to web resources."""

    HTML = 1
    CSS = 2
    JAVASCRIPT = 3
    XML = 4
    PNG = 5
    JPG = 6
    GIF = 7
    XAP = 8
    XSL = 9
    ICO = 10
    SVG = 11
    RESX = 12


EXTENSION_TYPES: dict[str, WebResourceType] = {
    ".htm": WebResourceType.HTML,
    ".html": WebResourceType.HTML,
    ".css": WebResourceType.CSS,
    ".js": WebResourceType.JAVASCRIPT,
    ".xml": WebResourceType.XML,
    ".png": WebResourceType.PNG,
    ".jpg": WebResourceType.JPG,
    ".jpeg": WebResourceType.JPG,
    ".gif": WebResourceType.GIF,
    ".xap": WebResourceType.XAP,
    ".xsl": WebResourceType.XSL,
    ".xslt": WebResourceType.XSL,
    ".ico": WebResourceType.ICO,
    ".svg": WebResourceType.SVG,
    ".resx": WebResourceType.RESX,
}


def extension_of(name: str) -> str:
    """Lower-cased extension of the final path segment, including the dot."""
    return PurePosixPath(name).suffix.lower()


def normalize_extension(extension: str) -> str:
    """Normalize ``"JS"``, ``"js"`` and ``".js"`` to ``".js"``."""
    extension = extension.strip().lower()
    if extension and not extension.startswith("."):
        extension = "." + extension
    return extension


def infer_resource_type(name: str) -> WebResourceType:
    """Map a file name to its resource type, defaulting to HTML."""
    return EXTENSION_TYPES.get(extension_of(name), WebResourceType.HTML)
