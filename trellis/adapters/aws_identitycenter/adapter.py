# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""Trellis AWS IAM Identity Center adapter."""

from typing import Any, Callable, Dict, List, Optional, Tuple

from trellis.adapters import BaseAdapter
from trellis.adapters.aws.adapter import marker_value
from trellis.adapters.aws.config import credentials
from trellis.adapters.aws_identitycenter.api import Client
from trellis.adapters.aws_identitycenter.config import Configuration
from trellis.exceptions import InvalidEntityConfigException
from trellis.helpers.conversion import (
    RFC3339_FORMATS,
    ConversionOptions,
    convert_objects,
)
from trellis.models import Page, Request
from trellis.pagination import (
    CompositeCursor,
    CursorValue,
    marshal_cursor,
    unmarshal_cursor,
    validate_composite_cursor,
)
from trellis.pagination.collection import page_members
from trellis.types import ListResult

PERMISSION_SET = "PermissionSet"
USER = "User"
GROUP = "Group"
GROUP_MEMBERSHIP = "GroupMembership"

ENTITIES = (PERMISSION_SET, USER, GROUP, GROUP_MEMBERSHIP)


class Adapter(BaseAdapter):
    NAME = "AWS Identity Center"
    CONFIG = Configuration
    MAX_PAGE_SIZE = 100

    def validate(self, request: Request, config: Configuration):
        """Validates a page request against the requirements of Identity Center."""
        credentials(request)

        if request.entity.external_id not in ENTITIES:
            raise InvalidEntityConfigException(
                "Provided entity external ID is invalid."
            )

        if request.ordered:
            raise InvalidEntityConfigException("Ordered must be set to false.")

        super().validate(request, config)

    def request_page(self, request: Request, config: Configuration) -> Page:
        """Requests a page of Identity Center entities.

        Group memberships are paged one group at a time, with the group being paged
        recorded in the cursor.

        :param request: The page request.
        :param config: The parsed Identity Center configuration.

        :return: A page of converted Identity Center entities.
        """
        entity = request.entity.external_id
        is_member = entity == GROUP_MEMBERSHIP

        cursor = unmarshal_cursor(request.cursor)
        validate_composite_cursor(cursor, entity, is_member)

        self.logger.info("Starting datasource request", extra=self.log_context(request))

        access_key_id, secret_access_key = credentials(request)
        client = Client(
            access_key_id=access_key_id,
            secret_access_key=secret_access_key,
            region=config.region,
            timeout=config.request_timeout_seconds,
            identity_store_id=config.identity_store_id,
            instance_arn=config.instance_arn,
        )

        objects: List[Dict[str, Any]]
        next_cursor: Optional[CompositeCursor]

        if is_member:
            objects, next_cursor = page_members(
                cursor,
                lambda position: client.get_groups(1, marker_value(position)),
                lambda group_id, position: client.get_group_memberships(
                    group_id,
                    request.page_size,
                    marker_value(position),
                ),
                unique_attribute="GroupId",
                member_attribute="MemberId",
                collection_attribute="GroupId",
            )
        else:
            objects, next_cursor = self.page_entities(
                {
                    PERMISSION_SET: client.get_permission_sets,
                    USER: client.get_users,
                    GROUP: client.get_groups,
                }[entity],
                request.page_size,
                cursor,
            )

        page = Page(
            objects=convert_objects(
                request.entity,
                objects,
                ConversionOptions(
                    jsonpath_attribute_names=True,
                    date_time_formats=RFC3339_FORMATS,
                    local_time_zone_offset=config.local_time_zone_offset,
                ),
            ),
            next_cursor=marshal_cursor(next_cursor),
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

    @staticmethod
    def page_entities(
        fetch: Callable[[int, Optional[str]], ListResult],
        page_size: int,
        cursor: Optional[CompositeCursor],
    ) -> Tuple[List[Dict[str, Any]], Optional[CompositeCursor]]:
        """Returns a page of a non-member entity, and the cursor for the next page."""
        result = fetch(page_size, marker_value(cursor.cursor if cursor else None))

        if result.marker is None:
            return result.entries, None

        return result.entries, CompositeCursor(cursor=result.marker)
