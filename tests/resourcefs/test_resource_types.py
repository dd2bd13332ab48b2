"""
Tests for resource type inference.
"""

import pytest

from resourcefs.resource_types import (
    WebResourceType,
    extension_of,
    infer_resource_type,
    normalize_extension,
)


@pytest.mark.parametrize(
    "name,expected",
    [
        ("new_/scripts/form.js", WebResourceType.JAVASCRIPT),
        ("page.htm", WebResourceType.HTML),
        ("theme.CSS", WebResourceType.CSS),
        ("photo.jpeg", WebResourceType.JPG),
        ("transform.xslt", WebResourceType.XSL),
        ("strings.1033.resx", WebResourceType.RESX),
        ("icon.svg", WebResourceType.SVG),
    ],
)
def test_infer_resource_type(name, expected):
    assert infer_resource_type(name) == expected


def test_unknown_extension_defaults_to_html():
    assert infer_resource_type("new_/readme") == WebResourceType.HTML
    assert infer_resource_type("archive.zip") == WebResourceType.HTML


def test_extension_of_uses_last_segment():
    assert extension_of("lib.v2/readme") == ""
    assert extension_of("lib/App.JS") == ".js"


def test_normalize_extension():
    assert normalize_extension("JS") == ".js"
    assert normalize_extension(".Css ") == ".css"
    assert normalize_extension("") == ""


def test_type_codes():
    assert int(WebResourceType.HTML) == 1
    assert int(WebResourceType.JAVASCRIPT) == 3
    assert int(WebResourceType.RESX) == 12
