# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""Provides the cursor used when paging ServiceNow with advanced filters.

Advanced filters require a number of filters to be paged in turn, each of which is
itself paged with a composite cursor. The advanced filter cursor records which filter
is currently being paged, and the position within it.
"""

from typing import List, Optional

from pydantic import BaseModel, Extra, Field, ValidationError

from trellis.adapters.servicenow.filters import EntityFilter, RelatedFilter
from trellis.exceptions import InvalidPageRequestException
from trellis.pagination import CompositeCursor, decode_base64_json, encode_base64_json


class CursorModel(BaseModel):
    class Config:
        allow_population_by_field_name = True
        extra = Extra.ignore


class ImplicitFilterCursor(CursorModel):
    """Defines the (scope, member) filter pair being paged, and the position in it."""

    entity_filter_index: int = Field(0, alias="entityFilterIndex", ge=0)
    member_filter_index: int = Field(0, alias="memberFilterIndex", ge=0)
    cursor: Optional[CompositeCursor] = Field(None)


class RelatedFilterCursor(CursorModel):
    """Defines the related filter being paged.

    The entity cursor is the position within the entity being requested, while the
    related entity cursor is the position within the scope the entity is related to.
    """

    entity_index: int = Field(0, alias="entityIndex", ge=0)
    entity_cursor: Optional[str] = Field(None, alias="entityCursor")
    related_entity_cursor: Optional[CompositeCursor] = Field(
        None,
        alias="relatedEntityCursor",
    )


class AdvancedFilterCursor(CursorModel):
    implicit_filter_cursor: Optional[ImplicitFilterCursor] = Field(
        None,
        alias="implicitFilterCursor",
    )
    related_filter_cursor: Optional[RelatedFilterCursor] = Field(
        None,
        alias="relatedFilterCursor",
    )


def unmarshal_advanced_filter_cursor(value: str) -> Optional[AdvancedFilterCursor]:
    """Unmarshals an advanced filter cursor provided by the caller.

    :param value: The base64 encoded JSON cursor.

    :raises InvalidPageRequestException: The cursor was malformed.

    :return: The decoded cursor, or None if the cursor was empty.
    """
    if not value:
        return None

    try:
        return AdvancedFilterCursor.parse_obj(decode_base64_json(value))
    except ValidationError as err:
        raise InvalidPageRequestException(f"Failed to unmarshal JSON cursor: {err}.")


def marshal_advanced_filter_cursor(cursor: Optional[AdvancedFilterCursor]) -> str:
    """Marshals an advanced filter cursor for return to the caller.

    :param cursor: The cursor to marshal, or None if the sync is complete.

    :return: The base64 encoded JSON cursor, or an empty string if no cursor was set.
    """
    if cursor is None:
        return ""

    return encode_base64_json(cursor.dict(by_alias=True, exclude_none=True))


def next_implicit_filter_cursor(
    current: ImplicitFilterCursor,
    filters: List[EntityFilter],
    next_cursor: Optional[CompositeCursor],
) -> Optional[ImplicitFilterCursor]:
    """Determines the implicit filter cursor following a page.

    Each (scope, member) filter pair is paged to completion before moving onto the
    next member filter of the scope, and then onto the next scope.

    :param current: The implicit filter cursor used to request the current page.
    :param filters: The implicit filters of the requested entity.
    :param next_cursor: The position of the next page within the current filter pair.

    :return: The next implicit filter cursor, or None if all filters are complete.
    """
    if next_cursor is not None:
        return ImplicitFilterCursor(
            entity_filter_index=current.entity_filter_index,
            member_filter_index=current.member_filter_index,
            cursor=next_cursor,
        )

    members = filters[current.entity_filter_index].members
    if current.member_filter_index + 1 < len(members):
        return ImplicitFilterCursor(
            entity_filter_index=current.entity_filter_index,
            member_filter_index=current.member_filter_index + 1,
        )

    if current.entity_filter_index + 1 < len(filters):
        return ImplicitFilterCursor(entity_filter_index=current.entity_filter_index + 1)

    return None


def next_related_filter_cursor(
    current: RelatedFilterCursor,
    entity_next: Optional[str],
    related_next: Optional[CompositeCursor],
    filters: List[RelatedFilter],
) -> Optional[RelatedFilterCursor]:
    """Determines the related filter cursor following a page.

    All pages of the requested entity are read for a page of related objects before
    moving onto the next page of related objects. Once all related objects have been
    read, the next related filter is paged.

    :param current: The related filter cursor used to request the current page.
    :param entity_next: The position of the next page of the requested entity.
    :param related_next: The position of the next page of related objects.
    :param filters: The related filters of the requested entity.

    :return: The next related filter cursor, or None if all filters are complete.
    """
    if entity_next is not None:
        return RelatedFilterCursor(
            entity_index=current.entity_index,
            entity_cursor=entity_next,
            related_entity_cursor=current.related_entity_cursor,
        )

    if related_next is not None:
        return RelatedFilterCursor(
            entity_index=current.entity_index,
            related_entity_cursor=related_next,
        )

    if current.entity_index + 1 < len(filters):
        return RelatedFilterCursor(entity_index=current.entity_index + 1)

    return None


def implicit_filter_cursor_from(
    cursor: Optional[AdvancedFilterCursor],
    filters: List[EntityFilter],
    entity: str,
) -> ImplicitFilterCursor:
    """Returns the implicit filter cursor of an advanced filter cursor.

    :param cursor: The advanced filter cursor provided with the request, if any.
    :param filters: The implicit filters of the requested entity.
    :param entity: The external ID of the requested entity.

    :raises InvalidPageRequestException: The cursor is not an implicit filter cursor,
        or refers to a filter which is not configured.

    :return: The implicit filter cursor, defaulting to the first filter pair.
    """
    if cursor is None:
        return ImplicitFilterCursor()

    current = cursor.implicit_filter_cursor
    if current is None:
        raise InvalidPageRequestException(
            f"Implicit filter cursor is unexpectedly nil for entity: {entity}."
        )

    if current.entity_filter_index >= len(filters) or (
        current.member_filter_index > 0
        and current.member_filter_index
        >= len(filters[current.entity_filter_index].members)
    ):
        raise InvalidPageRequestException(
            f"Implicit filter cursor is out of range for entity: {entity}."
        )

    return current


def related_filter_cursor_from(
    cursor: Optional[AdvancedFilterCursor],
    filters: List[RelatedFilter],
    entity: str,
) -> RelatedFilterCursor:
    """Returns the related filter cursor of an advanced filter cursor.

    :param cursor: The advanced filter cursor provided with the request, if any.
    :param filters: The related filters of the requested entity.
    :param entity: The external ID of the requested entity.

    :raises InvalidPageRequestException: The cursor is not a related filter cursor, or
        refers to a filter which is not configured.

    :return: The related filter cursor, defaulting to the first filter.
    """
    if cursor is None:
        return RelatedFilterCursor()

    current = cursor.related_filter_cursor
    if current is None:
        raise InvalidPageRequestException(
            f"Related filter cursor is unexpectedly nil for entity: {entity}."
        )

    if current.entity_index >= len(filters):
        raise InvalidPageRequestException(
            f"Related filter cursor is out of range for entity: {entity}."
        )

    return current
