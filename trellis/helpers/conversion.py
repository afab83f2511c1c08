# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""Provides conversion of raw datasource objects into typed, flattened objects.

Each requested attribute is extracted from a raw datasource object, and converted
into the requested type. Attributes may be extracted using one of the following, as
enabled by the adapter:

    1. JSONPath attribute names, such as `$.profile.email`, which are evaluated
       against the raw object using JMESPath.
    2. Complex attribute names, such as `profile__email` where the delimiter is `__`,
       which walk nested objects.
    3. Otherwise, the external identifier is used as a key of the raw object.

Any object which cannot be converted causes the entire page to fail, as partial pages
are never returned.
"""

import datetime
import json
import re
from typing import Any, Dict, List, Optional

import jmespath
from jmespath.exceptions import JMESPathError
from pydantic import BaseModel, Extra, Field

from trellis.constants import (
    ATTRIBUTE_TYPE_BOOL,
    ATTRIBUTE_TYPE_DATETIME,
    ATTRIBUTE_TYPE_DOUBLE,
    ATTRIBUTE_TYPE_DURATION,
    ATTRIBUTE_TYPE_INT64,
)
from trellis.exceptions import InternalException
from trellis.models import AttributeConfig, EntityConfig
from trellis.types import DateTimeFormat

# RFC 3339 date-times, with and without fractional seconds.
RFC3339_FORMATS = [
    DateTimeFormat("%Y-%m-%dT%H:%M:%S%z", True),
    DateTimeFormat("%Y-%m-%dT%H:%M:%S.%f%z", True),
]

# Tokens of a JSONPath expression which are supported for attribute names.
JSONPATH_TOKEN = re.compile(
    r"\.(?P<name>[A-Za-z_][A-Za-z0-9_\-]*)"
    r"|\[(?P<index>-?\d+|\*)\]"
    r"|\[(?P<quote>['\"])(?P<quoted>.+?)(?P=quote)\]"
)

# A unit suffixed duration, such as "1h30m" or "1.5s".
DURATION_TOKEN = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")
DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1,
    "m": 60,
    "h": 3600,
}


class ConversionOptions(BaseModel, extra=Extra.forbid):
    """Defines how raw datasource objects are converted."""

    jsonpath_attribute_names: bool = Field(False)
    complex_attribute_name_delimiter: Optional[str] = Field(None)
    date_time_formats: List[DateTimeFormat] = Field([])

    # The offset, in seconds east of UTC, for date-times without a time zone.
    local_time_zone_offset: int = Field(0)


def jsonpath_to_jmespath(path: str) -> str:
    """Converts a JSONPath attribute name into an equivalent JMESPath expression.

    :param path: The JSONPath expression, which must begin with `$`.

    :raises ValueError: The JSONPath expression is not supported.

    :return: An equivalent JMESPath expression.
    """
    if not path.startswith("$"):
        raise ValueError(f"JSONPath '{path}' must begin with '$'")

    parts = []
    position = 1

    while position < len(path):
        match = JSONPATH_TOKEN.match(path, position)
        if not match:
            raise ValueError(f"JSONPath '{path}' is not valid at offset {position}")

        if match.group("index") is not None:
            parts.append(f"[{match.group('index')}]")
        else:
            name = match.group("name") or match.group("quoted")
            separator = "." if parts else ""
            parts.append(f"{separator}{json.dumps(name)}")

        position = match.end()

    return "".join(parts) or "@"


def extract(candidate: Dict[str, Any], name: str, options: ConversionOptions) -> Any:
    """Extracts the value of an attribute from a raw object.

    :param candidate: The raw datasource object.
    :param name: The external identifier of the attribute.
    :param options: The conversion options of the adapter.

    :raises ValueError: The attribute name is not a valid expression.

    :return: The raw value, or None if not present.
    """
    if options.jsonpath_attribute_names and name.startswith("$"):
        try:
            return jmespath.search(jsonpath_to_jmespath(name), candidate)
        except JMESPathError as err:
            raise ValueError(f"JSONPath '{name}' could not be evaluated, {err}")

    delimiter = options.complex_attribute_name_delimiter
    if delimiter and delimiter in name:
        value: Any = candidate
        for part in name.split(delimiter):
            if not isinstance(value, dict):
                return None

            value = value.get(part)

        return value

    return candidate.get(name)


def parse_datetime(value: str, options: ConversionOptions) -> datetime.datetime:
    """Parses a date-time using the configured date-time formats.

    Date-times without a time zone are assumed to be in the configured local time
    zone offset.

    :param value: The date-time to parse.
    :param options: The conversion options of the adapter.

    :raises ValueError: The date-time did not match any of the configured formats.

    :return: A time zone aware date-time.
    """
    local = datetime.timezone(
        datetime.timedelta(seconds=options.local_time_zone_offset)
    )

    for candidate in options.date_time_formats:
        try:
            parsed = datetime.datetime.strptime(value, candidate.format)
        except ValueError:
            continue

        if not candidate.has_time_zone or parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=local)

        return parsed

    raise ValueError(f"date-time '{value}' does not match any supported format")


def parse_duration(value: Any) -> datetime.timedelta:
    """Parses a duration, as either a number of seconds or a unit suffixed string.

    :param value: The duration to parse.

    :raises ValueError: The duration could not be parsed.

    :return: The parsed duration.
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.timedelta(seconds=value)

    if isinstance(value, str):
        tokens = DURATION_TOKEN.findall(value)
        if tokens and "".join(f"{n}{u}" for n, u in tokens) == value:
            seconds = sum(float(n) * DURATION_UNITS[u] for n, u in tokens)
            return datetime.timedelta(seconds=seconds)

    raise ValueError(f"duration '{value}' could not be parsed")


def convert_value(
    attribute: AttributeConfig,
    value: Any,
    options: ConversionOptions,
) -> Any:
    """Converts a single raw value to the type of the attribute.

    :param attribute: The attribute configuration.
    :param value: The raw value to convert.
    :param options: The conversion options of the adapter.

    :raises ValueError: The value could not be converted.

    :return: The converted value.
    """
    kind = attribute.type

    if isinstance(value, (dict, list)):
        raise ValueError(f"attribute '{attribute.external_id}' is not a {kind} value")

    if kind == ATTRIBUTE_TYPE_BOOL:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in ("true", "false"):
            return value.lower() == "true"

        raise ValueError(f"attribute '{attribute.external_id}' is not a Bool value")

    if kind == ATTRIBUTE_TYPE_INT64:
        if isinstance(value, bool):
            raise ValueError(f"attribute '{attribute.external_id}' is not an Int64")
        if isinstance(value, float) and not value.is_integer():
            raise ValueError(f"attribute '{attribute.external_id}' is not an Int64")

        return int(value)

    if kind == ATTRIBUTE_TYPE_DOUBLE:
        if isinstance(value, bool):
            raise ValueError(f"attribute '{attribute.external_id}' is not a Double")

        return float(value)

    if kind == ATTRIBUTE_TYPE_DATETIME:
        if isinstance(value, datetime.datetime):
            if value.tzinfo is None:
                return value.replace(tzinfo=datetime.timezone.utc)
            return value
        if isinstance(value, str):
            return parse_datetime(value, options)

        raise ValueError(f"attribute '{attribute.external_id}' is not a DateTime")

    if kind == ATTRIBUTE_TYPE_DURATION:
        return parse_duration(value)

    # Strings are returned as is, while other scalars are rendered as JSON.
    if isinstance(value, str):
        return value

    return json.dumps(value)


def convert_object(
    entity: EntityConfig,
    candidate: Dict[str, Any],
    options: ConversionOptions,
) -> Dict[str, Any]:
    """Converts a single raw object into a flattened object of the requested entity.

    :param entity: The requested entity configuration.
    :param candidate: The raw datasource object.
    :param options: The conversion options of the adapter.

    :raises ValueError: The object could not be converted.

    :return: The converted object.
    """
    result: Dict[str, Any] = {}

    for attribute in entity.attributes:
        value = extract(candidate, attribute.external_id, options)
        if value is None:
            continue

        if attribute.list:
            if not isinstance(value, list):
                value = [value]

            result[attribute.external_id] = [
                convert_value(attribute, element, options)
                for element in value
                if element is not None
            ]
        else:
            result[attribute.external_id] = convert_value(attribute, value, options)

    for child in entity.child_entities:
        value = extract(candidate, child.external_id, options)
        if value is None:
            continue

        if isinstance(value, dict):
            value = [value]

        if not isinstance(value, list) or not all(isinstance(v, dict) for v in value):
            raise ValueError(
                f"child entity '{child.external_id}' is not a list of objects"
            )

        result[child.external_id] = [
            convert_object(child, element, options) for element in value
        ]

    return result


def convert_objects(
    entity: EntityConfig,
    objects: List[Dict[str, Any]],
    options: ConversionOptions,
) -> List[Dict[str, Any]]:
    """Converts raw datasource objects into flattened objects of the requested entity.

    :param entity: The requested entity configuration.
    :param objects: The raw datasource objects.
    :param options: The conversion options of the adapter.

    :raises InternalException: Any object could not be converted.

    :return: The converted objects.
    """
    try:
        return [convert_object(entity, candidate, options) for candidate in objects]
    except (TypeError, ValueError) as err:
        raise InternalException(
            f"Failed to convert datasource response objects: {err}."
        )
