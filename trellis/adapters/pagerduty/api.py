# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""PagerDuty REST API client."""

import logging
from typing import List, Optional, Tuple

import requests

from trellis.exceptions import InternalException
from trellis.helpers.http import http_error, request_timeout_message
from trellis.pagination import next_cursor_from_page_size
from trellis.types import HTTPResponse, ListResult

API_HOSTNAME = "api.pagerduty.com"


class Client:
    def __init__(self, address: str, authorization: str, timeout: int):
        """Setup a new client.

        :param address: The base URL of the PagerDuty API.
        :param authorization: The PagerDuty API token, including its prefix.
        :param timeout: The number of seconds to wait for a response.
        """
        self.logger = logging.getLogger(__name__)
        self.address = address
        self.timeout = timeout
        self.headers = {
            "Accept": "application/vnd.pagerduty+json;version=2",
            "Authorization": authorization,
            "Content-Type": "application/json",
        }

    def _get(self, url: str, params: List[Tuple[str, str]]) -> HTTPResponse:
        """A GET wrapper to handle errors for the caller.

        :param url: URL to perform the HTTP GET against.
        :param params: HTTP parameters to add to the request, as pairs.

        :raises InternalException: The request could not be completed.
        :raises RequestFailedException: An HTTP request failed.

        :return: HTTP Response object containing the headers and body of a response.
        """
        self.logger.info("Sending request to datasource", extra={"url": url})

        try:
            response = requests.get(
                url,
                headers=self.headers,
                params=params,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as err:
            raise InternalException(
                f"Failed to execute PagerDuty request: {err}. "
                f"{request_timeout_message(self.timeout)}"
            )
        except requests.exceptions.RequestException as err:
            raise InternalException(f"Failed to execute PagerDuty request: {err}.")

        error = http_error(response.status_code, response.headers.get("Retry-After"))
        if error is not None:
            self.logger.error(
                "Datasource responded with an error",
                extra={"url": url, "status_code": response.status_code},
            )
            raise error

        try:
            body = response.json()
        except ValueError as err:
            raise InternalException(f"Failed to unmarshal PagerDuty response: {err}.")

        return HTTPResponse(headers=response.headers, body=body)

    def get_page(
        self,
        path: str,
        key: str,
        page_size: int,
        offset: int,
        params: Optional[List[Tuple[str, str]]] = None,
    ) -> ListResult:
        """Fetches a page of objects using classic offset pagination.

        :param path: The path of the resource to read, such as `users`.
        :param key: The key of the response body which holds the objects.
        :param page_size: The maximum number of objects to return.
        :param offset: The offset of the first object to return.
        :param params: Any additional query parameters, as pairs.

        :raises InternalException: The response was not in the expected format.

        :return: ListResult object containing the next offset, and the objects.
        """
        result = self._get(
            f"{self.address}/{path}",
            [("offset", str(offset)), ("limit", str(page_size))] + (params or []),
        )

        if not isinstance(result.body, dict) or key not in result.body:
            raise InternalException(f"Field missing in PagerDuty response: {key}.")

        objects = result.body[key]
        if not isinstance(objects, list) or not all(
            isinstance(candidate, dict) for candidate in objects
        ):
            raise InternalException(
                f"Entity {key} field exists in PagerDuty response but field value is "
                "not a list of objects."
            )

        more = result.body.get("more", True)
        if not isinstance(more, bool):
            raise InternalException(
                "Field more exists in PagerDuty response but field value is not a bool."
            )

        next_offset = None
        if more:
            next_offset = next_cursor_from_page_size(len(objects), page_size, offset)

        return ListResult(marker=next_offset, entries=objects)
