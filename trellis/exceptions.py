# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""Exceptions used by Trellis."""

from typing import Optional

from trellis.constants import (
    ERROR_CODE_DATASOURCE_FAILED,
    ERROR_CODE_INTERNAL,
    ERROR_CODE_INVALID_DATASOURCE_CONFIG,
    ERROR_CODE_INVALID_ENTITY_CONFIG,
    ERROR_CODE_INVALID_PAGE_REQUEST_CONFIG,
)


class TrellisException(Exception):
    """All exceptions should inherit from this to allow for hierarchical handling.

    Every exception carries the error code which is returned to the caller when the
    exception is converted into a page response.
    """

    code = ERROR_CODE_INTERNAL

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retry_after: Optional[str] = None,
    ):
        super().__init__(message)

        self.message = message
        self.status_code = status_code
        self.retry_after = retry_after


class InvalidDatasourceConfigException(TrellisException):
    """Indicates that the datasource configuration or credentials are not valid."""

    code = ERROR_CODE_INVALID_DATASOURCE_CONFIG


class InvalidEntityConfigException(TrellisException):
    """Indicates that the requested entity, or its attributes, are not valid."""

    code = ERROR_CODE_INVALID_ENTITY_CONFIG


class InvalidPageRequestException(TrellisException):
    """Indicates that the page size or cursor of a page request is not valid."""

    code = ERROR_CODE_INVALID_PAGE_REQUEST_CONFIG


class InternalException(TrellisException):
    """Indicates that an error occurred while fetching or processing a page."""

    code = ERROR_CODE_INTERNAL


class AccessException(InternalException):
    """Indicates an issue occurred while attempting to access the requested resource."""


class DatasourceFailedException(TrellisException):
    """Indicates that the datasource responded with an error."""

    code = ERROR_CODE_DATASOURCE_FAILED


class RequestFailedException(DatasourceFailedException):
    """Indicates that an upstream request failed with an unsuccessful status code."""


class AdapterMissingException(InvalidDatasourceConfigException):
    """Indicates that a requested adapter was not found."""
