# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""Trellis PagerDuty adapter.

PagerDuty uses classic offset pagination, so all cursor values are integer offsets.
Team members are paged one team at a time, with the offset of the next team recorded
in the `collection_cursor` of the cursor.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlparse

from trellis.adapters import BaseAdapter
from trellis.adapters.pagerduty.api import API_HOSTNAME, Client
from trellis.adapters.pagerduty.config import Configuration
from trellis.exceptions import (
    InternalException,
    InvalidDatasourceConfigException,
    InvalidEntityConfigException,
    InvalidPageRequestException,
)
from trellis.helpers.conversion import (
    RFC3339_FORMATS,
    ConversionOptions,
    convert_objects,
)
from trellis.helpers.parsing import parse_address
from trellis.models import Page, Request
from trellis.pagination import (
    CompositeCursor,
    CursorValue,
    marshal_cursor,
    parse_offset_value,
    unmarshal_cursor,
    validate_composite_cursor,
)
from trellis.pagination.collection import page_members
from trellis.types import ListResult

USERS = "users"
TEAMS = "teams"
MEMBERS = "members"
ONCALLS = "oncalls"

ENTITIES = (USERS, TEAMS, MEMBERS, ONCALLS)

TOKEN_PREFIXES = ("Token token=", "Bearer ")


def offset_value(value: Optional[CursorValue]) -> int:
    """Ensures that a cursor value is an offset, as all PagerDuty cursors are."""
    if value is None:
        return 0

    if isinstance(value, int):
        return value

    raise InvalidPageRequestException(
        f"Unable to parse cursor: want valid number, got {{{value}}}."
    )


def to_member(candidate: Dict[str, Any]) -> Dict[str, Any]:
    """Flattens a team member returned by PagerDuty into a member object."""
    user = candidate.get("user")
    if not isinstance(user, dict):
        raise InternalException(
            "Failed to parse user field in PagerDuty team members response as object."
        )

    member = {"userId": user.get("id")}
    if candidate.get("role") is not None:
        member["role"] = candidate["role"]

    return member


def oncall_id(candidate: Dict[str, Any]) -> str:
    """Returns the identifier of an on-call, as on-calls have no `id` of their own.

    The identifier is `{escalation_policy.id}-{user.id}-{start}-{end}`, where a
    missing start or end is treated as an empty string.
    """
    parts = []

    for field in ("escalation_policy", "user"):
        value = candidate.get(field)
        if not isinstance(value, dict) or not isinstance(value.get("id"), str):
            raise InternalException(
                f"Failed to parse a PagerDuty OnCall object's {field} field id as "
                "string."
            )

        parts.append(value["id"])

    for field in ("start", "end"):
        value = candidate.get(field) or ""
        if not isinstance(value, str):
            raise InternalException(
                f"Failed to parse a PagerDuty OnCall object's {field} field as "
                f"string: {value}."
            )

        parts.append(value)

    return "-".join(parts)


class Adapter(BaseAdapter):
    NAME = "PagerDuty"
    CONFIG = Configuration
    MAX_PAGE_SIZE = 100
    UNIQUE_ID_ATTRIBUTE = "id"

    def validate(self, request: Request, config: Configuration):
        """Validates the address, credentials, and entity of a page request."""
        if request.auth is None or not request.auth.http_authorization:
            raise InvalidDatasourceConfigException(
                "PagerDuty auth is missing required token."
            )

        if not request.auth.http_authorization.startswith(TOKEN_PREFIXES):
            raise InvalidDatasourceConfigException(
                'PagerDuty auth is missing required "Token token=" or "Bearer " '
                "prefix."
            )

        # All API calls are made to the same host, the token determines the account.
        if urlparse(parse_address(request.address)).netloc != API_HOSTNAME:
            raise InvalidDatasourceConfigException(
                f"Invalid PagerDuty address. Must be {API_HOSTNAME}."
            )

        if request.entity.external_id not in ENTITIES:
            raise InvalidEntityConfigException(
                "Provided entity external ID is invalid."
            )

        if request.entity.child_entities:
            raise InvalidEntityConfigException(
                "PagerDuty requested entity does not support child entities."
            )

        # Responses are not sorted by the unique ID.
        if request.ordered:
            raise InvalidEntityConfigException(
                "PagerDuty Ordered property must be false."
            )

        super().validate(request, config)

    def request_page(self, request: Request, config: Configuration) -> Page:
        """Requests a page of PagerDuty objects.

        :param request: The page request.
        :param config: The parsed PagerDuty configuration.

        :return: A page of converted PagerDuty objects.
        """
        entity = request.entity.external_id

        cursor = unmarshal_cursor(request.cursor)
        validate_composite_cursor(cursor, entity, entity == MEMBERS)

        self.logger.info("Starting datasource request", extra=self.log_context(request))

        client = Client(
            address=parse_address(request.address),
            authorization=request.auth.http_authorization,  # type: ignore
            timeout=config.request_timeout_seconds,
        )
        params = config.query_parameters(entity)

        next_cursor: Optional[CompositeCursor] = None
        if entity == MEMBERS:
            objects, next_cursor = page_members(
                cursor,
                lambda position: client.get_page(
                    TEAMS,
                    TEAMS,
                    1,
                    offset_value(position),
                ),
                lambda team_id, position: self.members(
                    client,
                    team_id,
                    request.page_size,
                    offset_value(position),
                    params,
                ),
                unique_attribute="id",
                member_attribute="userId",
                collection_attribute="teamId",
            )
        else:
            result = client.get_page(
                entity,
                entity,
                request.page_size,
                parse_offset_value(cursor),
                params=params,
            )
            objects = result.entries

            if entity == ONCALLS:
                for candidate in objects:
                    candidate["id"] = oncall_id(candidate)

            if result.marker is not None:
                next_cursor = CompositeCursor(cursor=result.marker)

        page = Page(
            objects=convert_objects(
                request.entity,
                objects,
                ConversionOptions(
                    jsonpath_attribute_names=True,
                    complex_attribute_name_delimiter="__",
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
    def members(
        client: Client,
        team_id: str,
        page_size: int,
        offset: int,
        params: List[tuple],
    ) -> ListResult:
        """Returns a page of the members of a team."""
        result = client.get_page(
            f"{TEAMS}/{quote(team_id, safe='')}/{MEMBERS}",
            MEMBERS,
            page_size,
            offset,
            params=params,
        )

        return ListResult(
            marker=result.marker,
            entries=[to_member(candidate) for candidate in result.entries],
        )
