# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""Custom types used throughout Trellis."""

from collections.abc import MutableMapping
from typing import Any, Dict, List, NamedTuple


class HTTPResponse(NamedTuple):
    """Provides both the headers and the body of an HTTP response."""

    headers: MutableMapping  # type: ignore
    body: Any


class ListResult(NamedTuple):
    """Provides both a vendor native pagination marker and entries from a list call."""

    marker: Any
    entries: List[Dict[str, Any]]


class DateTimeFormat(NamedTuple):
    """A strptime compatible date-time format, and whether it includes a time zone."""

    format: str  # noqa: A003
    has_time_zone: bool
