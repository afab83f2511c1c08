# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""Trellis adapters."""

import abc
import logging
from typing import Any, Dict, Optional, Type

from pydantic import ValidationError

from trellis.exceptions import (
    InvalidDatasourceConfigException,
    InvalidEntityConfigException,
    InvalidPageRequestException,
    TrellisException,
)
from trellis.helpers import parsing
from trellis.models import (
    AdapterError,
    CommonConfig,
    Page,
    Request,
    Response,
    Settings,
)


class BaseAdapter:
    """Provides a consistent page request, validation, and error handling flow.

    Adapters implement `request_page` to return a page of objects from their
    datasource, raising exceptions from the Trellis hierarchy on failure. Adapters
    must not hold any state between page requests, as all pagination state is held by
    the caller in the cursor.
    """

    NAME = "base"
    CONFIG: Type[CommonConfig] = CommonConfig

    # The maximum page size supported by the datasource, if any.
    MAX_PAGE_SIZE: Optional[int] = None

    # The external ID of the attribute which must be requested as the unique ID of
    # every entity. Where not set, any attribute may be flagged as the unique ID.
    UNIQUE_ID_ATTRIBUTE: Optional[str] = None

    def __init__(
        self,
        context: Optional[Dict[str, Any]] = None,
        settings: Optional[Settings] = None,
    ):
        """Sets up a Trellis adapter.

        :param context: Contextual information relating to the current runtime.
        :param settings: Runtime settings, read from the environment if not provided.

        :raises InvalidDatasourceConfigException: The runtime settings are not valid.
        """
        self.logger = logging.getLogger(__name__)
        self.runtime_context = context or {}

        # Wrap validation errors to keep them in the Trellis exception hierarchy.
        try:
            self.settings = settings or Settings()
        except ValidationError as err:
            raise InvalidDatasourceConfigException(parsing.validation_error(err))

    def log_context(self, request: Request) -> Dict[str, Any]:
        """Returns contextual log data to be appended to all log messages."""
        return {
            "adapter": self.NAME,
            "entity": request.entity.external_id,
            "page_size": request.page_size,
        }

    def get_page(self, request: Request) -> Response:
        """Adapter entrypoint, called once for each page requested.

        Wraps `request_page` to handle validation and errors consistently. This method
        should NOT be implemented by adapters as it is only intended to provide a
        consistent calling and error handling mechanism for all adapters.

        :param request: The page request.

        :return: A response containing either the page, or an error.
        """
        try:
            config = self.configure(request)
            self.validate(request, config)

            page = self.request_page(request, config)
        except TrellisException as err:
            self.logger.error(
                "Page request could not be completed successfully.",
                extra={
                    "exception": err,
                    "code": err.code,
                    "status_code": err.status_code,
                    **self.log_context(request),
                },
            )
            return Response(
                error=AdapterError(
                    message=err.message,
                    code=err.code,
                    retry_after=err.retry_after,
                ),
            )
        except Exception as err:
            # Unexpected exceptions must still produce an error response, as nothing is
            # allowed to escape back to the caller.
            self.logger.exception(
                "Page request failed unexpectedly.",
                extra={"exception": err, **self.log_context(request)},
            )
            return Response(
                error=AdapterError(
                    message=f"Unexpected error while requesting page: {err}.",
                    code=TrellisException.code,
                ),
            )

        return Response(success=page)

    def configure(self, request: Request) -> CommonConfig:
        """Parses the datasource configuration provided with a request.

        :param request: The page request.

        :raises InvalidDatasourceConfigException: The configuration is not valid.

        :return: The parsed datasource configuration.
        """
        try:
            return self.CONFIG.parse_obj(request.config)
        except ValidationError as err:
            raise InvalidDatasourceConfigException(
                parsing.validation_error(err, f"{self.NAME} config is invalid")
            )

    def validate(self, request: Request, config: CommonConfig):
        """Validates a page request before any datasource request is made.

        Adapters which extend validation should call this method first.

        :param request: The page request.
        :param config: The parsed datasource configuration.

        :raises InvalidEntityConfigException: The requested entity is not valid.
        :raises InvalidPageRequestException: The page size is not valid.
        """
        if self.UNIQUE_ID_ATTRIBUTE is not None:
            found = request.entity.attribute(self.UNIQUE_ID_ATTRIBUTE) is not None
        else:
            found = request.entity.has_unique_id

        if not found:
            raise InvalidEntityConfigException(
                "Requested entity attributes are missing unique ID attribute."
            )

        if request.page_size < 1:
            raise InvalidPageRequestException(
                f"Provided page size ({request.page_size}) must be greater than zero."
            )

        if self.MAX_PAGE_SIZE is not None and request.page_size > self.MAX_PAGE_SIZE:
            raise InvalidPageRequestException(
                f"Provided page size ({request.page_size}) exceeds the maximum allowed "
                f"({self.MAX_PAGE_SIZE})."
            )

    @abc.abstractmethod
    def request_page(self, request: Request, config: Any) -> Page:
        """Provides a stub for an adapter to request a page from its datasource."""
        pass
