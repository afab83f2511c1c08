# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""ServiceNow Table API client."""

import logging
from typing import List, Optional
from urllib.parse import quote_plus, urlparse

import requests

from trellis.exceptions import (
    DatasourceFailedException,
    InternalException,
    InvalidPageRequestException,
)
from trellis.helpers.http import http_error, request_timeout_message
from trellis.pagination import next_cursor_from_link_header
from trellis.types import HTTPResponse, ListResult

UNIQUE_ID_ATTRIBUTE = "sys_id"


def endpoint(
    address: str,
    api_version: str,
    entity: str,
    attributes: List[str],
    page_size: int,
    query: Optional[str] = None,
) -> str:
    """Constructs the Table API URL for the first page of an entity.

    Objects are always ordered by their unique ID, which ensures pages are stable as
    objects are added or removed during a sync.

    :param address: The base URL of the ServiceNow instance.
    :param api_version: The version of the Table API to use.
    :param entity: The name of the table to read.
    :param attributes: The names of the fields to return.
    :param page_size: The maximum number of objects to return.
    :param query: An optional encoded query to filter objects by.

    :return: The URL of the first page.
    """
    fields = [UNIQUE_ID_ATTRIBUTE]
    fields.extend(
        quote_plus(attribute)
        for attribute in attributes
        if attribute != UNIQUE_ID_ATTRIBUTE
    )

    prefix = ""
    if query:
        prefix = f"{quote_plus(query)}%5E"

    return (
        f"{address}/api/now/{api_version}/table/{entity}"
        f"?sysparm_fields={','.join(fields)}"
        f"&sysparm_exclude_reference_link=true"
        f"&sysparm_limit={page_size}"
        f"&sysparm_query={prefix}ORDERBYsys_id"
    )


class Client:
    def __init__(
        self,
        address: str,
        authorization: str,
        api_version: str,
        timeout: int,
    ):
        """Setup a new client.

        :param address: The base URL of the ServiceNow instance.
        :param authorization: The value of the Authorization header to send.
        :param api_version: The version of the Table API to use.
        :param timeout: The number of seconds to wait for a response.
        """
        self.logger = logging.getLogger(__name__)
        self.address = address
        self.api_version = api_version
        self.timeout = timeout
        self.hostname = urlparse(address).hostname
        self.headers = {
            "Accept": "application/json",
            "Authorization": authorization,
        }

    def _get(self, url: str) -> HTTPResponse:
        """A GET wrapper to handle errors for the caller.

        :param url: URL to perform the HTTP GET against.

        :raises InternalException: The request could not be completed.
        :raises DatasourceFailedException: ServiceNow responded with an error.
        :raises RequestFailedException: An HTTP request failed.

        :return: HTTP Response object containing the headers and body of a response.
        """
        self.logger.info("Sending request to datasource", extra={"url": url})

        try:
            response = requests.get(url, headers=self.headers, timeout=self.timeout)
        except requests.exceptions.Timeout as err:
            raise InternalException(
                f"Failed to execute request: {err}. "
                f"{request_timeout_message(self.timeout)}"
            )
        except requests.exceptions.RequestException as err:
            raise InternalException(f"Failed to execute request: {err}.")

        retry_after = response.headers.get("Retry-After")

        if response.status_code != 200:
            self.logger.error(
                "Datasource responded with an error",
                extra={
                    "url": url,
                    "status_code": response.status_code,
                    "retry_after": retry_after,
                },
            )

            try:
                detail = response.json().get("error")
            except (ValueError, AttributeError):
                detail = None

            if isinstance(detail, dict):
                raise DatasourceFailedException(
                    f"Failed to get page from datasource: {response.status_code}. "
                    f"Message: `{detail.get('message', '')}`. "
                    f"Details: `{detail.get('detail', '')}`.",
                    status_code=response.status_code,
                    retry_after=retry_after,
                )

            error = http_error(response.status_code, retry_after)
            if error is not None:
                raise error

        try:
            body = response.json()
        except ValueError as err:
            raise InternalException(
                f"Failed to unmarshal the datasource response: {err}."
            )

        return HTTPResponse(headers=response.headers, body=body)

    def get_page(
        self,
        entity: str,
        attributes: List[str],
        page_size: int,
        query: Optional[str] = None,
        cursor: Optional[str] = None,
    ) -> ListResult:
        """Fetches a page of objects from a table.

        :param entity: The name of the table to read.
        :param attributes: The names of the fields to return.
        :param page_size: The maximum number of objects to return.
        :param query: An optional encoded query to filter objects by.
        :param cursor: The URL of the page to return, if not the first.

        :return: ListResult object containing the URL of the next page, and the objects.
        """
        url = cursor or endpoint(
            self.address,
            self.api_version,
            entity,
            attributes,
            page_size,
            query=query,
        )

        # Only follow URLs on the configured instance.
        if urlparse(url).hostname != self.hostname:
            raise InvalidPageRequestException(
                f"{self.hostname} not found in cursor ({url}). Refusing to follow."
            )

        result = self._get(url)

        objects = result.body.get("result") if isinstance(result.body, dict) else None
        if not isinstance(objects, list):
            raise InternalException(
                "Failed to unmarshal the datasource response: missing result list."
            )

        return ListResult(
            marker=next_cursor_from_link_header(
                result.headers.get("Link"),
                hostname=self.hostname,
            ),
            entries=objects,
        )
