# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""Trellis ServiceNow adapter.

Entities are read from the ServiceNow Table API, where each entity is a table. Pages
are requested in one of three ways:

    1. Plain, where the configured filter for the table is applied and the next page
       URL from the `Link` header is returned in the cursor.
    2. Implicit filters, where users, groups, or group memberships are restricted to
       a scope of groups, and their members.
    3. Related filters, where entities such as incidents are restricted to those
       which refer to objects within a scope.
"""

import base64
from typing import Any, Dict, List, Optional

from trellis.adapters import BaseAdapter
from trellis.adapters.servicenow import cursor as filter_cursor
from trellis.adapters.servicenow import filters
from trellis.adapters.servicenow.api import UNIQUE_ID_ATTRIBUTE, Client
from trellis.adapters.servicenow.config import Configuration
from trellis.exceptions import (
    InvalidDatasourceConfigException,
    InvalidPageRequestException,
)
from trellis.helpers.conversion import ConversionOptions, convert_objects
from trellis.helpers.parsing import parse_address
from trellis.models import Page, Request
from trellis.pagination import (
    CompositeCursor,
    marshal_cursor,
    unmarshal_cursor,
)
from trellis.types import DateTimeFormat, ListResult

# Default ServiceNow formats. Users are able to override these with a personal
# preference, which is not supported.
DATE_TIME_FORMATS = [
    DateTimeFormat("%Y-%m-%d %H:%M:%S", False),
    DateTimeFormat("%Y-%m-%d", False),
]

USER_PREFIX = "user."


def authorization_header(request: Request) -> str:
    """Returns the Authorization header to send for the credentials of a request."""
    if request.auth is None:
        return ""

    if request.auth.basic is not None:
        token = base64.b64encode(
            f"{request.auth.basic.username}:{request.auth.basic.password}".encode()
        ).decode()

        return f"Basic {token}"

    return request.auth.http_authorization


def ids_from(objects: List[Dict[str, Any]], attribute: str) -> List[str]:
    """Returns all string values of an attribute, skipping objects without one."""
    return [
        candidate[attribute]
        for candidate in objects
        if isinstance(candidate.get(attribute), str)
    ]


def strip_user_prefix(objects: List[Dict[str, Any]]):
    """Removes the `user.` prefix from attributes of group membership objects."""
    for candidate in objects:
        for key in [key for key in candidate if key.startswith(USER_PREFIX)]:
            candidate[key[len(USER_PREFIX) :]] = candidate.pop(key)


class Adapter(BaseAdapter):
    NAME = "Servicenow"
    CONFIG = Configuration
    MAX_PAGE_SIZE = 10000
    UNIQUE_ID_ATTRIBUTE = UNIQUE_ID_ATTRIBUTE

    def validate(self, request: Request, config: Configuration):
        """Validates the address and credentials of a page request."""
        parse_address(request.address)

        auth = request.auth
        if auth is None or (not auth.http_authorization and auth.basic is None):
            raise InvalidDatasourceConfigException(
                "System of Record is missing required authentication credentials."
            )

        if auth.basic is not None and (
            not auth.basic.username or not auth.basic.password
        ):
            raise InvalidDatasourceConfigException(
                "One of username or password required for basic auth is empty."
            )

        if auth.http_authorization and not auth.http_authorization.startswith(
            "Bearer "
        ):
            raise InvalidDatasourceConfigException(
                'Provided auth token is missing required "Bearer " prefix.'
            )

        super().validate(request, config)

    def request_page(self, request: Request, config: Configuration) -> Page:
        """Requests a page of objects from a ServiceNow table.

        :param request: The page request.
        :param config: The parsed ServiceNow configuration.

        :return: A page of converted objects.
        """
        entity = request.entity.external_id
        client = Client(
            address=parse_address(request.address),
            authorization=authorization_header(request),
            api_version=config.api_version,
            timeout=config.request_timeout_seconds,
        )

        implicit: List[filters.EntityFilter] = []
        related: List[filters.RelatedFilter] = []
        if config.advanced_filters is not None:
            implicit = filters.extract_implicit_filters(config.advanced_filters).get(
                entity, []
            )
            related = filters.extract_related_filters(config.advanced_filters).get(
                entity, []
            )

        if implicit and related:
            raise InvalidDatasourceConfigException(
                f"Cannot use both implicit and related filters for entity: {entity}."
            )

        self.logger.info(
            "Starting datasource request",
            extra={
                "implicit_filters": len(implicit),
                "related_filters": len(related),
                **self.log_context(request),
            },
        )

        if implicit:
            objects, next_cursor = self.implicit_page(client, request, implicit)
        elif related:
            objects, next_cursor = self.related_page(client, request, related)
        else:
            objects, next_cursor = self.plain_page(client, request, config)

        page = Page(
            objects=convert_objects(
                request.entity,
                objects,
                ConversionOptions(
                    jsonpath_attribute_names=True,
                    complex_attribute_name_delimiter="__",
                    date_time_formats=DATE_TIME_FORMATS,
                    local_time_zone_offset=config.local_time_zone_offset,
                ),
            ),
            next_cursor=next_cursor,
        )

        self.logger.info(
            "Datasource request completed successfully",
            extra={
                "objects": len(page.objects),
                "has_next_cursor": bool(page.next_cursor),
                **self.log_context(request),
            },
        )

        return page

    def plain_page(self, client: Client, request: Request, config: Configuration):
        """Returns a page of objects using the configured filter of the table."""
        cursor = unmarshal_cursor(request.cursor)

        url = cursor.cursor if cursor is not None else None
        if url is not None and not isinstance(url, str):
            raise InvalidPageRequestException(
                f"Unable to parse cursor: want valid string, got {{{url}}}."
            )

        result = client.get_page(
            request.entity.external_id,
            [attribute.external_id for attribute in request.entity.attributes],
            request.page_size,
            query=config.filters.get(request.entity.external_id),
            cursor=url,
        )

        next_cursor = None
        if result.marker is not None:
            next_cursor = CompositeCursor(cursor=result.marker)

        return result.entries, marshal_cursor(next_cursor)

    def filtered_entities(
        self,
        client: Client,
        request: Request,
        scope: filters.EntityFilter,
        member_index: int,
        position: Optional[CompositeCursor],
        attributes: List[str],
    ):
        """Returns a page of objects within a scope, and the position of the next page.

        The scope is read a page at a time from the `collection_cursor` of the
        position. Where the scope has no member filters the scope objects themselves
        are returned. Otherwise the members of the scope objects are returned, paged
        from the `cursor` of the position.

        :param client: The ServiceNow client to use.
        :param request: The page request.
        :param scope: The scope, and any member filters, to read.
        :param member_index: The index of the member filter to apply.
        :param position: The position within the scope, and its members.
        :param attributes: The attributes to request for each object.

        :raises InvalidDatasourceConfigException: The member entity is not supported.

        :return: A ListResult of the objects, and position of the next page, if any.
        """
        collection_cursor = position.collection_cursor if position else None
        member_cursor = position.cursor if position else None

        scope_attributes: List[str] = []
        if scope.scope_entity == request.entity.external_id:
            scope_attributes = list(attributes)

        scoped = client.get_page(
            scope.scope_entity,
            scope_attributes,
            request.page_size,
            query=scope.scope_entity_filter,
            cursor=collection_cursor,  # type: ignore
        )

        if not scope.members:
            next_position = None
            if scoped.marker is not None:
                next_position = CompositeCursor(collection_cursor=scoped.marker)

            return ListResult(marker=next_position, entries=scoped.entries)

        member = scope.members[member_index]
        if member.member_entity != filters.USER:
            raise InvalidDatasourceConfigException(
                f"Member entity {member.member_entity} is not supported."
            )

        # Users of a group are only available through the group membership table,
        # where all user fields are prefixed.
        members = client.get_page(
            filters.GROUP_MEMBER,
            attributes + [f"{USER_PREFIX}{attribute}" for attribute in attributes],
            request.page_size,
            query=(
                f"groupIN{','.join(ids_from(scoped.entries, UNIQUE_ID_ATTRIBUTE))}"
                f"^{member.member_entity_filter}"
            ),
            cursor=member_cursor,  # type: ignore
        )

        if members.marker is not None:
            next_position = CompositeCursor(
                cursor=members.marker,
                collection_cursor=collection_cursor,
            )
        elif scoped.marker is not None:
            next_position = CompositeCursor(collection_cursor=scoped.marker)
        else:
            next_position = None

        return ListResult(marker=next_position, entries=members.entries)

    def implicit_page(
        self,
        client: Client,
        request: Request,
        implicit: List[filters.EntityFilter],
    ):
        """Returns a page of users, groups, or group memberships within a scope."""
        entity = request.entity.external_id
        current = filter_cursor.implicit_filter_cursor_from(
            filter_cursor.unmarshal_advanced_filter_cursor(request.cursor),
            implicit,
            entity,
        )

        scope = implicit[current.entity_filter_index]
        if scope.scope_entity != filters.SUPPORTED_SCOPE_ENTITY:
            raise InvalidDatasourceConfigException(
                f"{scope.scope_entity} is not a supported scope for the current "
                f"entity: {entity}."
            )

        result = self.filtered_entities(
            client,
            request,
            scope,
            current.member_filter_index,
            current.cursor,
            [attribute.external_id for attribute in request.entity.attributes],
        )

        if entity == filters.USER:
            strip_user_prefix(result.entries)

        following = filter_cursor.next_implicit_filter_cursor(
            current, implicit, result.marker
        )

        next_cursor = None
        if following is not None:
            next_cursor = filter_cursor.AdvancedFilterCursor(
                implicit_filter_cursor=following
            )

        return result.entries, filter_cursor.marshal_advanced_filter_cursor(
            next_cursor
        )

    def related_page(
        self,
        client: Client,
        request: Request,
        related: List[filters.RelatedFilter],
    ):
        """Returns a page of objects which refer to objects within a scope.

        The filter of the requested entity refers to an attribute of the scope, such
        as `assignment_groupIN{$.sys_user_group.sys_id}`. A page of the scope is read,
        and the template replaced with the values of that attribute before the entity
        itself is read.
        """
        entity = request.entity.external_id
        current = filter_cursor.related_filter_cursor_from(
            filter_cursor.unmarshal_advanced_filter_cursor(request.cursor),
            related,
            entity,
        )

        candidate = related[current.entity_index]
        related_entity, related_attribute = filters.extract_entity_and_attribute(
            candidate.entity_filter
        )

        scoped = self.filtered_entities(
            client,
            request,
            candidate.related_entity,
            0,
            current.related_entity_cursor,
            [related_attribute] if related_attribute else [],
        )

        if related_entity == filters.USER:
            related_attribute = f"{USER_PREFIX}{related_attribute}"

        query = filters.replace_entity_and_attribute(
            candidate.entity_filter,
            ",".join(ids_from(scoped.entries, related_attribute or "")),
        )

        result = client.get_page(
            entity,
            [attribute.external_id for attribute in request.entity.attributes],
            request.page_size,
            query=query,
            cursor=current.entity_cursor,
        )

        following = filter_cursor.next_related_filter_cursor(
            current, result.marker, scoped.marker, related
        )

        next_cursor = None
        if following is not None:
            next_cursor = filter_cursor.AdvancedFilterCursor(
                related_filter_cursor=following
            )

        return result.entries, filter_cursor.marshal_advanced_filter_cursor(
            next_cursor
        )
