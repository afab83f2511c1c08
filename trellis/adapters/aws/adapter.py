# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""Trellis AWS IAM adapter.

Entities may be read from the account of the provided credentials, or from a list of
resource accounts by assuming a role in each. When reading from resource accounts the
vendor marker is wrapped in an account cursor which records the account being read.
"""

from typing import Any, Dict, List, Optional, Tuple

from trellis.adapters import BaseAdapter
from trellis.adapters.aws import api, iam
from trellis.adapters.aws.config import Configuration, credentials
from trellis.exceptions import (
    InternalException,
    InvalidEntityConfigException,
    InvalidPageRequestException,
)
from trellis.helpers import concurrency
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
    paginate_objects,
    unmarshal_cursor,
    validate_composite_cursor,
)
from trellis.pagination.accounts import (
    AccountCursor,
    account_cursor_from,
    advance_account_cursor,
    encode_account_cursor,
)
from trellis.pagination.collection import page_members
from trellis.types import ListResult

ACCOUNT_ID_ATTRIBUTE = "AccountId"
MAX_RESOURCE_ACCOUNTS = 100


def marker_value(value: Optional[CursorValue]) -> Optional[str]:
    """Ensures that a cursor value is a string, as all AWS markers are strings."""
    if value is None or isinstance(value, str):
        return value

    raise InvalidPageRequestException(
        f"Unable to parse cursor: want valid string, got {{{value}}}."
    )


class Adapter(BaseAdapter):
    NAME = "AWS"
    CONFIG = Configuration
    MAX_PAGE_SIZE = 1000

    def validate(self, request: Request, config: Configuration):
        """Validates a page request against the requirements of the AWS adapter."""
        credentials(request)

        if request.entity.external_id not in [entity.value for entity in iam.Entity]:
            raise InvalidEntityConfigException(
                "Provided entity external ID is invalid."
            )

        super().validate(request, config)

        if request.entity.external_id == iam.Entity.IDENTITY_PROVIDER and (
            config.path_prefix(iam.Entity.IDENTITY_PROVIDER.value)
        ):
            raise InvalidEntityConfigException(
                f"Entity {iam.Entity.IDENTITY_PROVIDER.value} does not supports "
                "filtering."
            )

        if request.ordered:
            raise InvalidEntityConfigException("Ordered must be set to false.")

        if len(config.resource_account_roles) > MAX_RESOURCE_ACCOUNTS:
            raise InvalidPageRequestException(
                "Provided number of resource accounts "
                f"({len(config.resource_account_roles)}) exceeds the maximum allowed "
                f"limit: ({MAX_RESOURCE_ACCOUNTS})."
            )

    def request_page(self, request: Request, config: Configuration) -> Page:
        """Requests a page of IAM entities.

        :param request: The page request.
        :param config: The parsed AWS configuration.

        :return: A page of converted IAM entities.
        """
        entity = iam.Entity(request.entity.external_id)
        info = iam.ENTITIES[entity]

        cursor = unmarshal_cursor(request.cursor)
        validate_composite_cursor(cursor, entity.value, info.is_member)

        self.logger.info(
            "Starting datasource request",
            extra={
                "accounts": len(config.resource_account_roles),
                **self.log_context(request),
            },
        )

        pager = Pager(self, request, config, entity)
        if info.is_member:
            objects, next_cursor = pager.members(cursor)
        else:
            objects, next_cursor = pager.entities(cursor)

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


class Pager:
    """Pages IAM entities for a single page request.

    IAM clients are created on demand for each account read during the request, and
    are discarded when the request completes.
    """

    def __init__(
        self,
        adapter: Adapter,
        request: Request,
        config: Configuration,
        entity: iam.Entity,
    ):
        self.adapter = adapter
        self.request = request
        self.config = config
        self.entity = entity
        self.info = iam.ENTITIES[entity]
        self.accounts = len(config.resource_account_roles)

        self._clients: Dict[Optional[int], api.Client] = {}

    def client(self, offset: Optional[int] = None) -> api.Client:
        """Returns an IAM client for the account at the given resource account offset.

        :param offset: The offset of the resource account role to assume, or None to
            use the account of the provided credentials.

        :return: An IAM client.
        """
        if offset not in self._clients:
            access_key_id, secret_access_key = credentials(self.request)

            self._clients[offset] = api.Client(
                access_key_id=access_key_id,
                secret_access_key=secret_access_key,
                region=self.config.region,
                timeout=self.config.request_timeout_seconds,
                role_arn=(
                    self.config.resource_account_roles[offset]
                    if offset is not None
                    else None
                ),
                offset=offset or 0,
            )

        return self._clients[offset]

    def fetch(
        self,
        client: api.Client,
        page_size: int,
        marker: Optional[str],
        collection: Optional[str] = None,
    ) -> ListResult:
        """Lists a page of the requested entity, including the details of each entry.

        :param client: The IAM client to use.
        :param page_size: The maximum number of entries to return.
        :param marker: The IAM marker, or paging offset, of the page to return.
        :param collection: The unique name of the collection item, for member entities.

        :return: ListResult object containing the next marker, and the entries.
        """
        result = client.list(
            self.entity.value,
            self.info,
            page_size,
            marker=marker,
            path_prefix=self.config.path_prefix(self.entity.value),
            collection=collection,
        )
        entries = result.entries
        next_marker = result.marker

        # Some operations do not support pagination, so are paged from the complete
        # list of entries.
        if not self.info.paginated:
            entries, next_marker = paginate_objects(
                entries, page_size, CompositeCursor(cursor=marker)
            )

        if self.info.get_operation is not None:
            entries = concurrency.fan_out(
                lambda entry: client.get(self.entity.value, self.info, entry),
                entries,
                self.adapter.settings.max_concurrency,
                timeout=self.config.request_timeout_seconds,
            )

        if self.request.entity.attribute(ACCOUNT_ID_ATTRIBUTE) is not None:
            for entry in entries:
                self.add_account_id(entry)

        return ListResult(marker=next_marker, entries=entries)

    def add_account_id(self, entry: Dict[str, Any]):
        """Adds the account ID, parsed from the ARN of the entry, to the entry."""
        arn = entry.get(self.info.arn_attribute)

        try:
            if not isinstance(arn, str):
                raise ValueError("Unable to find Arn in entity")

            entry[ACCOUNT_ID_ATTRIBUTE] = iam.account_id_from_arn(arn)
        except ValueError as err:
            raise InternalException(f"Failed to add AccountID to entity: {err}.")

    def entities(
        self,
        cursor: Optional[CompositeCursor],
    ) -> Tuple[List[Dict[str, Any]], Optional[CompositeCursor]]:
        """Returns a page of a non-member entity, and the cursor for the next page."""
        value = marker_value(cursor.cursor if cursor else None)

        if not self.accounts:
            result = self.fetch(self.client(), self.request.page_size, value)
            if result.marker is None:
                return result.entries, None

            return result.entries, CompositeCursor(cursor=result.marker)

        account = account_cursor_from(value, self.accounts)
        result = self.fetch(
            self.client(account.offset),
            self.request.page_size,
            account.next_marker,
        )

        following = advance_account_cursor(account.offset, result.marker, self.accounts)
        if following is None:
            return result.entries, None

        return result.entries, CompositeCursor(cursor=encode_account_cursor(following))

    def members(
        self,
        cursor: Optional[CompositeCursor],
    ) -> Tuple[List[Dict[str, Any]], Optional[CompositeCursor]]:
        """Returns a page of a member entity, and the cursor for the next page.

        When reading from resource accounts, the `collection_cursor` holds the account
        cursor of the next collection item, while the `cursor` holds an account cursor
        pinned to the account of the current collection item.
        """
        collection = iam.collection_of(self.info)
        collection_entity = self.info.member_of.value  # type: ignore
        path_prefix = self.config.path_prefix(collection_entity)

        # The account of the collection item most recently fetched by this request.
        peeked: Dict[str, int] = {}

        def fetch_collection(position: Optional[CursorValue]) -> ListResult:
            if not self.accounts:
                return self.client().list(
                    collection_entity,
                    collection,
                    1,
                    marker=marker_value(position),
                    path_prefix=path_prefix,
                )

            account = account_cursor_from(marker_value(position), self.accounts)
            result = self.client(account.offset).list(
                collection_entity,
                collection,
                1,
                marker=account.next_marker,
                path_prefix=path_prefix,
            )
            peeked["offset"] = account.offset

            following = advance_account_cursor(
                account.offset, result.marker, self.accounts
            )

            return ListResult(
                marker=encode_account_cursor(following) if following else None,
                entries=result.entries,
            )

        def fetch_members(
            collection_id: str,
            position: Optional[CursorValue],
        ) -> ListResult:
            if not self.accounts:
                return self.fetch(
                    self.client(),
                    self.request.page_size,
                    marker_value(position),
                    collection=collection_id,
                )

            # Members are always read from the account of their collection item.
            if position is None:
                offset, marker = peeked["offset"], None
            else:
                account = account_cursor_from(marker_value(position), self.accounts)
                offset, marker = account.offset, account.next_marker

            result = self.fetch(
                self.client(offset),
                self.request.page_size,
                marker,
                collection=collection_id,
            )

            next_marker = None
            if result.marker is not None:
                next_marker = encode_account_cursor(
                    AccountCursor(offset=offset, next_marker=result.marker)
                )

            return ListResult(marker=next_marker, entries=result.entries)

        return page_members(
            cursor,
            fetch_collection,
            fetch_members,
            unique_attribute=collection.unique_name,  # type: ignore
            member_attribute=self.info.member_attribute,  # type: ignore
            collection_attribute=collection.unique_name,  # type: ignore
        )
