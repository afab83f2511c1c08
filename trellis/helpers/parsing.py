# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""Provides helpers for parsing."""

from typing import List, Optional
from urllib.parse import urlparse

from pydantic import ValidationError

from trellis.exceptions import InvalidDatasourceConfigException


def validation_error(exc: ValidationError, message: str = "Configuration is not valid"):
    """Parse Pydantic validation exceptions into a user readable string.

    Fields of settings models are reported using their environment variable name,
    while fields of datasource configuration documents are reported using their path
    within the document.

    :param exc: The Pydantic ValidationError to parse.
    :param message: The message to prefix the validation errors with.

    :return: The exception as a string, including fields with validation errors.
    """
    try:
        prefix = exc.model.Config.env_prefix  # type: ignore
    except AttributeError:
        prefix = None

    for error in exc.errors():
        if prefix is not None:
            field = f"{prefix}{str(error['loc'][0]).upper()}"
        else:
            field = ".".join(str(part) for part in error["loc"])

        message = f"{message}, {field} {error['msg']}"

    return message


def parse_address(address: str, schemes: Optional[List[str]] = None) -> str:
    """Validates a datasource address, returning it with a scheme.

    Addresses may be provided with or without a scheme. Where no scheme is provided
    the first allowed scheme is assumed.

    :param address: The address to validate.
    :param schemes: A list of allowed schemes, defaulting to HTTPS only.

    :raises InvalidDatasourceConfigException: The address is empty, or uses a scheme
        which is not allowed.

    :return: The trimmed address, including a scheme.
    """
    schemes = schemes or ["https"]
    trimmed = address.strip()

    if not trimmed:
        raise InvalidDatasourceConfigException("Datasource address is not set.")

    parsed = urlparse(trimmed)

    # urlparse treats 'example.com' as a path, so check for a separator first.
    if "://" not in trimmed:
        return f"{schemes[0]}://{trimmed}"

    if parsed.scheme.lower() not in schemes or not parsed.netloc:
        raise InvalidDatasourceConfigException(
            f"Datasource address is not valid, scheme must be one of {schemes}."
        )

    return trimmed
