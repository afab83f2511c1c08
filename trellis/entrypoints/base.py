# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""Provides functions used between entrypoints."""

import json
import sys
from typing import Any, Dict

from aws_lambda_powertools import Logger
from pydantic import ValidationError

from trellis.constants import (
    ERROR_CODE_INVALID_PAGE_REQUEST_CONFIG,
    PLUGIN_GROUP_ADAPTER,
)
from trellis.exceptions import TrellisException
from trellis.helpers import parsing, plugin
from trellis.logging import TrellisFormatter
from trellis.models import AdapterError, Request, Response, Settings


def logger(context: Dict[str, Any]) -> Logger:
    """Returns a structured logger which emits JSON to stderr.

    Powertools loggers share a single underlying "trellis" logger, so every module
    logger under the package is emitted using the same formatter.

    :param context: Contextual information relating to the current runtime.
    """
    try:
        level = Settings().log_level
    except ValidationError:
        level = "INFO"

    return Logger(
        "trellis",
        level=level,
        logger_formatter=TrellisFormatter(context),
        stream=sys.stderr,
    )


def document(response: Response) -> Dict[str, Any]:
    """Renders a response as a JSON compatible document.

    Converted objects may contain date-times and durations, which are rendered by
    pydantic as ISO 8601 strings and seconds respectively.
    """
    return json.loads(response.json())


def get_page(event: Dict[str, Any], context: Dict[str, Any]) -> Dict[str, Any]:
    """Provides the main entrypoint for Trellis.

    This function should be called from various wrappers in order to execute a page
    request when running under the respective runtime. The adapter is selected by the
    `datasource_type` of the request.

    :param event: The page request document.
    :param context: Contextual information relating to the current runtime.

    :return: The page response document.
    """
    log = logger(context)

    try:
        request = Request.parse_obj(event)
    except ValidationError as err:
        message = parsing.validation_error(err, "Page request is invalid")
        log.error("Page request could not be parsed", extra={"exception": message})

        return document(
            Response(
                error=AdapterError(
                    message=message,
                    code=ERROR_CODE_INVALID_PAGE_REQUEST_CONFIG,
                )
            )
        )

    try:
        adapter = plugin.load_handler(
            request.datasource_type,
            PLUGIN_GROUP_ADAPTER,
            context=context,
        )
    except TrellisException as err:
        log.error(
            "Failed to load adapter",
            extra={"exception": err, "datasource_type": request.datasource_type},
        )

        return document(
            Response(error=AdapterError(message=err.message, code=err.code))
        )

    return document(adapter.get_page(request))
