# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""Provides the structured log format used by Trellis entrypoints.

Entrypoints write page responses to stdout, so all logs go to stderr as one JSON
document per line.
"""


import json
import logging
from typing import Any, Dict

from aws_lambda_powertools.logging.formatter import RESERVED_LOG_ATTRS, JsonFormatter


class TrellisFormatter(JsonFormatter):
    """Renders each log record as a single JSON document.

    Every document carries the runtime `context` of the entrypoint, such as the Lambda
    request ID or the local process ID. Data passed with `extra` is kept apart from
    the standard fields under `detail`, where adapters record the entity and page size
    of the page request being served.
    """

    def __init__(self, context: Dict[str, Any], *args, **kwargs):
        self.utc = True
        self.context = context

        super().__init__(*args, **kwargs)

        # Record where each message was logged from, as a path and a function name.
        self.reserved_attrs = (*RESERVED_LOG_ATTRS, "function")

        self.log_format["location"] = "%(pathname)s:%(lineno)d"
        self.log_format["function"] = "%(funcName)s"

    def extract_keys(self, record: logging.LogRecord) -> Dict[str, Any]:
        """Splits a log record into its standard fields and its `detail`.

        :param record: A log record to process.

        :return: A dictionary of log data to be serialized and output.
        """
        structured = record.__dict__.copy()
        structured["asctime"] = self.formatTime(record=record)

        extras = {
            key: value
            for key, value in structured.items()
            if key not in self.reserved_attrs
        }

        formatted = {}

        for key, value in self.log_format.items():
            if value and key in self.reserved_attrs:
                formatted[key] = value % structured
            else:
                formatted[key] = value

        formatted["detail"] = extras

        return formatted

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        """Return the log message including any context provided by the entrypoint.

        :param record: A log record to process.

        :return: A stringified JSON document rendered from the log record.
        """
        candidate = self.extract_keys(record=record)
        candidate["message"] = str(record.msg)
        candidate["context"] = self.context

        # Drop unset fields, rather than emitting nulls.
        structured = {
            key: value for key, value in candidate.items() if value is not None
        }

        return json.dumps(structured, default=str)
