# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""Provides helpers for handling datasource responses."""

from typing import Optional

from trellis.exceptions import RequestFailedException


def request_timeout_message(seconds: Optional[int]) -> str:
    """Returns a message indicating a request exceeded the configured timeout.

    :param seconds: The configured request timeout, in seconds.

    :return: The timeout message.
    """
    return f"Request timed out after the configured {seconds} second(s)."


def http_error(
    status_code: int,
    retry_after: Optional[str] = None,
) -> Optional[RequestFailedException]:
    """Returns an exception for an unsuccessful datasource HTTP status code.

    :param status_code: The HTTP status code returned by the datasource.
    :param retry_after: The value of any Retry-After header returned.

    :return: An exception to raise, or None if the status code indicates success.
    """
    if 200 <= status_code < 300:
        return None

    message = f"Datasource responded with an error: {status_code}."
    if status_code == 429:
        message = f"Datasource rate limit was exceeded: {status_code}."

    return RequestFailedException(
        message,
        status_code=status_code,
        retry_after=retry_after,
    )
