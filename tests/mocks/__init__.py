# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""Provides Mock implementations and helpers for unit and integration tests."""

import json
import os
from typing import Any, Dict, List, Optional

from trellis.models import Request, Settings

FIXTURES = os.path.join(os.path.dirname(os.path.dirname(__file__)), "fixtures")


def fixture(path: str) -> str:
    """Returns the contents of a fixture, relative to the fixtures directory."""
    with open(os.path.join(FIXTURES, path), "r") as handle:
        return handle.read()


def fixture_json(path: str) -> Any:
    return json.loads(fixture(path))


def settings() -> Settings:
    """Returns runtime settings which are not affected by the environment."""
    return Settings(max_concurrency=4, log_level="DEBUG")


def page_request(
    entity: str,
    attributes: List[str],
    unique: str = "id",
    page_size: int = 10,
    cursor: str = "",
    config: Optional[Dict[str, Any]] = None,
    address: str = "",
    username: Optional[str] = None,
    password: Optional[str] = None,
    token: Optional[str] = None,
    types: Optional[Dict[str, str]] = None,
) -> Request:
    """Builds a page request for an entity, flagging one attribute as the unique ID.

    :param entity: The external ID of the entity to request.
    :param attributes: The external IDs of the attributes to request.
    :param unique: The external ID of the attribute to flag as the unique ID.
    :param types: The types of attributes which are not strings, keyed by external ID.
    """
    auth: Dict[str, Any] = {}
    if username is not None or password is not None:
        auth["basic"] = {"username": username or "", "password": password or ""}

    if token is not None:
        auth["http_authorization"] = token

    return Request.parse_obj(
        {
            "address": address,
            "auth": auth or None,
            "entity": {
                "external_id": entity,
                "attributes": [
                    {
                        "external_id": attribute,
                        "type": (types or {}).get(attribute, "String"),
                        "unique_id": attribute == unique,
                    }
                    for attribute in attributes
                ],
            },
            "page_size": page_size,
            "cursor": cursor,
            "config": config or {},
        }
    )
