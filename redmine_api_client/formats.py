"""
Request and response body encodings supported by the Redmine REST API.

Redmine speaks either JSON or XML; the client picks one at construction
time and uses it for the path suffix (``/issues.json``), the request
body and the decoding of the response body.

XML documents are mapped onto the same shape the JSON API returns::

    <issue><id>1</id><project id="2" name="Demo"/></issue>
    -> {"issue": {"id": "1", "project": {"id": "2", "name": "Demo"}}}

Elements flagged ``type="array"`` decode to lists, and the attributes of
an array root (``total_count``, ``offset``, ``limit``) are lifted next
to the list, as in the JSON listing responses.  Leaf values stay
strings because XML carries no type information.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Mapping

from lxml import etree

from .exceptions import MalformedResponseError, ValidationError

FORMATS = ("json", "xml")

CONTENT_TYPES = {
    "json": "application/json",
    "xml": "application/xml",
}


def encode_body(fmt: str, params: Mapping[str, Any]) -> bytes:
    """Serialize ``params`` into a request body for ``fmt``."""
    if fmt == "json":
        try:
            return json.dumps(params).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Request body is not JSON serialisable: {exc}") from exc
    if not params:
        return b""
    if len(params) != 1:
        raise ValidationError(
            "XML request bodies need exactly one top-level key, got %r" % list(params)
        )
    tag, value = next(iter(params.items()))
    try:
        root = etree.Element(str(tag))
        _fill_element(root, value)
    except ValueError as exc:
        # lxml rejects tag names that are not valid XML names
        raise ValidationError(f"Request body cannot be expressed as XML: {exc}") from exc
    return etree.tostring(root, xml_declaration=True, encoding="UTF-8")


def decode_body(fmt: str, body: bytes) -> Any:
    """Decode a non-empty response body for ``fmt``.

    Raises :class:`MalformedResponseError` when the body does not parse.
    """
    if fmt == "json":
        try:
            return json.loads(body.decode("utf-8"))
        except (ValueError, RecursionError) as exc:
            # UnicodeDecodeError is a ValueError; bad UTF-8 is never replaced
            raise MalformedResponseError(
                f"Invalid JSON in response body: {exc!r}", _body_text(body)
            ) from exc
    parser = etree.XMLParser(resolve_entities=False, no_network=True)
    try:
        root = etree.fromstring(body, parser)
        value = _element_value(root)
    except (etree.XMLSyntaxError, RecursionError) as exc:
        raise MalformedResponseError(
            f"Invalid XML in response body: {exc!r}", _body_text(body)
        ) from exc
    result: Dict[str, Any] = {root.tag: value}
    if _is_array(root):
        for key, value in root.attrib.items():
            if key != "type":
                result[key] = value
    return result


# ----------------------------------------------------------------------
# XML helpers
# ----------------------------------------------------------------------
def _body_text(body: bytes) -> str:
    """Best-effort text of a rejected body, kept for error reports only."""
    return body.decode("utf-8", errors="replace")


def _singular(tag: str) -> str:
    if tag.endswith("ies"):
        return tag[:-3] + "y"
    if tag.endswith("s"):
        return tag[:-1]
    return "item"


def _fill_element(element: etree._Element, value: Any) -> None:
    if isinstance(value, Mapping):
        for key, child in value.items():
            _fill_element(etree.SubElement(element, str(key)), child)
    elif isinstance(value, (list, tuple)):
        element.set("type", "array")
        item_tag = _singular(element.tag)
        for child in value:
            _fill_element(etree.SubElement(element, item_tag), child)
    elif isinstance(value, bool):
        element.text = "true" if value else "false"
    elif value is not None:
        element.text = str(value)


def _is_array(element: etree._Element) -> bool:
    return element.get("type") == "array"


def _element_value(element: etree._Element) -> Any:
    children = [child for child in element if isinstance(child.tag, str)]
    if _is_array(element):
        return [_element_value(child) for child in children]

    attrs = {key: value for key, value in element.attrib.items() if key != "type"}
    if not children:
        text = element.text or ""
        if not attrs:
            return text
        if text.strip():
            attrs["text"] = text
        return attrs

    result: Dict[str, Any] = dict(attrs)
    repeated = set()
    for child in children:
        value = _element_value(child)
        if child.tag not in result:
            result[child.tag] = value
        elif child.tag in repeated:
            result[child.tag].append(value)
        else:
            # second occurrence of a tag turns it into a list
            result[child.tag] = [result[child.tag], value]
            repeated.add(child.tag)
    return result
