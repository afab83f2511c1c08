# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""Provides the composite cursor, and helpers for single collection pagination.

A composite cursor is the opaque pagination token handed to callers. It carries up to
three independent positions:

    1. `cursor` is the position within the collection currently being paged. For
       member entities this is the position within the members of a collection.
    2. `collection_id` is the identifier of the collection whose members are
       currently being paged. This is only used for member entities.
    3. `collection_cursor` is the position of the next collection to page the
       members of. This is only used for member entities.

Cursors are JSON encoded, and then base64 encoded, before being returned to the
caller. An empty string represents both the start, and the end, of a sync.
"""

import base64
import binascii
import json
from typing import Any, Dict, List, Optional, Tuple, Union
from urllib.parse import urlparse

from pydantic import BaseModel, Extra, Field, StrictInt, StrictStr, ValidationError

from trellis.exceptions import InternalException, InvalidPageRequestException

# The cursor value type. String cursors hold vendor markers or URLs, while integer
# cursors hold offsets.
CursorValue = Union[StrictInt, StrictStr]


class CompositeCursor(BaseModel):
    """Defines all positions required to resume pagination of an entity."""

    cursor: Optional[CursorValue] = Field(None)
    collection_id: Optional[StrictStr] = Field(None, alias="collectionId")
    collection_cursor: Optional[CursorValue] = Field(None, alias="collectionCursor")

    class Config:
        allow_population_by_field_name = True
        extra = Extra.ignore

    def encode(self) -> Dict[str, Any]:
        """Returns the wire representation of this cursor, omitting unset fields."""
        return self.dict(by_alias=True, exclude_none=True)


def decode_base64_json(value: str) -> Any:
    """Decodes a base64 encoded JSON document.

    :param value: The base64 encoded JSON document.

    :raises InvalidPageRequestException: The value is not valid base64, or JSON.

    :return: The decoded JSON document.
    """
    try:
        decoded = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as err:
        raise InvalidPageRequestException(f"Failed to decode base64 cursor: {err}.")

    try:
        return json.loads(decoded)
    except ValueError as err:
        raise InvalidPageRequestException(f"Failed to unmarshal JSON cursor: {err}.")


def encode_base64_json(value: Any) -> str:
    """Encodes a value as a base64 encoded JSON document.

    :param value: The value to encode.

    :raises InternalException: The value could not be serialized into JSON.

    :return: The base64 encoded JSON document.
    """
    try:
        encoded = json.dumps(value, separators=(",", ":"))
    except (TypeError, ValueError) as err:
        raise InternalException(f"Failed to marshal cursor into JSON: {err}.")

    return base64.b64encode(bytes(encoded, "utf-8")).decode("utf-8")


def unmarshal_cursor(value: str) -> Optional[CompositeCursor]:
    """Unmarshals a composite cursor provided by the caller.

    :param value: The base64 encoded JSON cursor.

    :raises InvalidPageRequestException: The cursor was malformed.

    :return: The decoded cursor, or None if the cursor was empty.
    """
    if not value:
        return None

    document = decode_base64_json(value)

    try:
        return CompositeCursor.parse_obj(document)
    except ValidationError as err:
        raise InvalidPageRequestException(f"Failed to unmarshal JSON cursor: {err}.")


def marshal_cursor(cursor: Optional[CompositeCursor]) -> str:
    """Marshals a composite cursor for return to the caller.

    :param cursor: The cursor to marshal, or None if the sync is complete.

    :raises InternalException: The cursor could not be marshalled.

    :return: The base64 encoded JSON cursor, or an empty string if no cursor was set.
    """
    if cursor is None:
        return ""

    return encode_base64_json(cursor.encode())


def validate_composite_cursor(
    cursor: Optional[CompositeCursor],
    entity: str,
    is_member: bool,
):
    """Ensures that the fields set on a cursor are consistent for the entity.

    Collection fields must never be set for entities which are not member entities,
    and a member entity cursor with a position within a collection must also identify
    that collection.

    :param cursor: The cursor to validate.
    :param entity: The external identifier of the requested entity.
    :param is_member: Whether the requested entity is a member entity.

    :raises InvalidPageRequestException: The cursor is not valid for the entity.
    """
    if cursor is None:
        return

    if is_member:
        if cursor.cursor is not None and cursor.collection_id is None:
            raise InvalidPageRequestException(
                f"Cursor does not have CollectionID set for entity {entity}."
            )

        return

    if cursor.collection_id is not None or cursor.collection_cursor is not None:
        raise InvalidPageRequestException(
            "Cursor must not contain CollectionID or CollectionCursor fields for "
            f"entity {entity}."
        )


def next_cursor_from_page_size(
    count: int,
    page_size: int,
    current: int,
) -> Optional[int]:
    """Computes the next offset cursor from the size of the current page.

    A page smaller than the requested page size must be the last page. A full page
    may or may not be the last page, so a cursor is always returned for it.

    :param count: The number of objects in the current page.
    :param page_size: The requested page size.
    :param current: The offset of the current page.

    :return: The offset of the next page, or None if this was the last page.
    """
    if count == page_size:
        return current + page_size

    return None


def next_cursor_from_link_header(
    link: Optional[str],
    hostname: Optional[str] = None,
) -> Optional[str]:
    """Attempt to parse the "next" URL from a provided Link header.

    :param link: Value of a Link header returned from a previous request.
    :param hostname: An optional hostname which the "next" URL must be on.

    :raises InternalException: The "next" URL was not on the expected host.

    :return: Extracted "next" URL, or None if this was the last page.
    """
    if not link:
        return None

    url = None

    # A link header may contain N entries ("first", "prev", "next", and "last").
    for entry in link.split(","):
        parts = entry.split(";")
        params = [part.strip().replace(" ", "") for part in parts[1:]]

        if 'rel="next"' in params or "rel=next" in params:
            url = parts[0].strip().lstrip("<").rstrip(">")

    if not url or not url.lower().startswith("https://"):
        return None

    # Try to mitigate SSRFs where a baked Link header is returned.
    if hostname and urlparse(url).hostname != hostname.lower():
        raise InternalException(
            f"{hostname} not found in Link header ({url}). Refusing to follow."
        )

    return url


def parse_offset_value(cursor: Optional[CompositeCursor]) -> int:
    """Parses the offset held by a cursor.

    :param cursor: The cursor to parse the offset of.

    :raises InvalidPageRequestException: The cursor does not contain a number.

    :return: The offset, or zero if no cursor was provided.
    """
    if cursor is None or cursor.cursor is None:
        return 0

    if isinstance(cursor.cursor, int):
        return cursor.cursor

    try:
        return int(cursor.cursor)
    except ValueError:
        raise InvalidPageRequestException(
            f"Unable to parse cursor: want valid number, got {{{cursor.cursor}}}."
        )


def paginate_objects(
    objects: List[Dict[str, Any]],
    page_size: int,
    cursor: Optional[CompositeCursor],
) -> Tuple[List[Dict[str, Any]], Optional[str]]:
    """Returns a page of objects from an API which does not support pagination.

    The cursor is treated as the offset of the first object of the page to return.

    :param objects: All objects returned by the datasource.
    :param page_size: The requested page size.
    :param cursor: The cursor containing the offset of the first object of the page.

    :raises InvalidPageRequestException: The cursor is not valid for the objects.

    :return: The requested page of objects, and the cursor of the next page.
    """
    start = parse_offset_value(cursor)

    # A start of zero is always valid, to allow for empty pages.
    if start != 0 and (start >= len(objects) or start < 0):
        raise InvalidPageRequestException(
            f"The cursor value: {start}, is out of range for number of objects: "
            f"{len(objects)}"
        )

    end = min(start + page_size, len(objects))

    next_cursor = None
    if end < len(objects):
        next_cursor = str(end)

    return objects[start:end], next_cursor
