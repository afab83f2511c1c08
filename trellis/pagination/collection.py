# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""Provides two-level pagination for member entities.

Member entities are entities which only exist within a parent "collection" entity,
such as the members of a group, or the policies attached to a role. These are paged by
walking the collection one item at a time, and paging all members of that item before
moving onto the next.

Only a single collection item is ever held at a time. The next collection item is found
by requesting a page of the collection with a page size of one, using the position
stored in the `collection_cursor` of the composite cursor.
"""

from typing import Any, Callable, Dict, List, Optional, Tuple

from trellis.exceptions import InternalException
from trellis.pagination import CompositeCursor, CursorValue
from trellis.types import ListResult

# Fetches a single item of the collection from the provided position.
CollectionFetcher = Callable[[Optional[CursorValue]], ListResult]

# Fetches a page of members of the identified collection item from the provided
# position.
MemberFetcher = Callable[[str, Optional[CursorValue]], ListResult]


def update_collection_cursor(
    cursor: CompositeCursor,
    fetch_collection: CollectionFetcher,
    unique_attribute: str,
) -> bool:
    """Updates the provided cursor in place with the next collection item to page.

    If the cursor already has a position within the members of a collection item,
    the cursor is returned unmodified. Otherwise, the next collection item is requested
    from the position in `collection_cursor` and its identifier is recorded as the
    `collection_id`. The next position within the collection is then recorded as the
    new `collection_cursor`.

    :param cursor: The cursor to update.
    :param fetch_collection: A callable which returns a page of at most one
        collection item, starting from the provided position.
    :param unique_attribute: The attribute of a collection item which identifies it.

    :raises InternalException: More than one collection item was returned, or the
        item returned has no identifier.

    :return: Whether the sync is complete, as there are no collection items left.
    """
    if cursor.cursor is not None:
        return False

    result = fetch_collection(cursor.collection_cursor)

    if len(result.entries) > 1:
        raise InternalException(
            "Too many collection objects returned in response; expected 1, got "
            f"{len(result.entries)}."
        )

    cursor.collection_id = None
    if result.entries:
        value = result.entries[0].get(unique_attribute)
        if not isinstance(value, str):
            raise InternalException(
                f"Failed to find collection unique ID; {unique_attribute} field is "
                "missing or not a string."
            )

        cursor.collection_id = value

    cursor.collection_cursor = result.marker

    return cursor.collection_id is None and cursor.collection_cursor is None


def tag_members(
    objects: List[Dict[str, Any]],
    collection_id: str,
    member_attribute: str,
    collection_attribute: str,
    id_attribute: str = "id",
) -> List[Dict[str, Any]]:
    """Adds a unique identifier and the relationship to each member object.

    The unique identifier of each member is `<member>-<collection>`, as a member may
    appear in more than one collection item.

    :param objects: The member objects to tag, which are modified in place.
    :param collection_id: The identifier of the collection item being paged.
    :param member_attribute: The attribute which uniquely identifies a member.
    :param collection_attribute: The attribute to record the collection identifier in.
    :param id_attribute: The attribute to record the synthesized identifier in.

    :raises InternalException: A member object is missing its unique attribute.

    :return: The tagged member objects.
    """
    for candidate in objects:
        value = candidate.get(member_attribute)

        if not isinstance(value, str):
            raise InternalException(
                f"Failed to parse {member_attribute} field in member response as "
                "string."
            )

        candidate[id_attribute] = f"{value}-{collection_id}"
        candidate[collection_attribute] = collection_id

    return objects


def next_member_cursor(
    cursor: CompositeCursor,
    members_next: Optional[CursorValue],
) -> Optional[CompositeCursor]:
    """Determines the cursor for the page following a page of members.

    If there are more members of the current collection item, the position within the
    members is recorded and the collection item is kept. Otherwise the position within
    the members is cleared, so the next request moves onto the next collection item.

    :param cursor: The cursor used to request the current page of members.
    :param members_next: The position of the next page of members, if any.

    :return: The next cursor, or None if the sync is complete.
    """
    if members_next is None and cursor.collection_cursor is None:
        return None

    return CompositeCursor(
        cursor=members_next,
        collection_id=cursor.collection_id,
        collection_cursor=cursor.collection_cursor,
    )


def page_members(
    cursor: Optional[CompositeCursor],
    fetch_collection: CollectionFetcher,
    fetch_members: MemberFetcher,
    unique_attribute: str,
    member_attribute: str,
    collection_attribute: str,
    id_attribute: str = "id",
) -> Tuple[List[Dict[str, Any]], Optional[CompositeCursor]]:
    """Returns a page of member objects, and the cursor for the next page.

    A collection item with no members still results in a page, albeit an empty one,
    with a cursor pointing to the next collection item. This ensures that a sync is
    not ended early due to an empty collection item.

    :param cursor: The cursor provided with the page request.
    :param fetch_collection: A callable which returns a page of at most one
        collection item, starting from the provided position.
    :param fetch_members: A callable which returns a page of members of a collection
        item, starting from the provided position.
    :param unique_attribute: The attribute of a collection item which identifies it.
    :param member_attribute: The attribute which uniquely identifies a member.
    :param collection_attribute: The attribute to record the collection identifier in.
    :param id_attribute: The attribute to record the synthesized identifier in.

    :return: A page of member objects, and the next cursor or None if complete.
    """
    current = cursor.copy() if cursor is not None else CompositeCursor()

    if update_collection_cursor(current, fetch_collection, unique_attribute):
        return [], None

    # The collection page was empty but more may follow. An example of this is a
    # collection in an account with no items, when more accounts remain.
    if current.collection_id is None:
        return [], CompositeCursor(collection_cursor=current.collection_cursor)

    result = fetch_members(current.collection_id, current.cursor)
    objects = tag_members(
        result.entries,
        current.collection_id,
        member_attribute,
        collection_attribute,
        id_attribute=id_attribute,
    )

    return objects, next_member_cursor(current, result.marker)
