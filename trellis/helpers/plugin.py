# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""Provides lookup of adapters, and entrypoints, registered with Trellis.

Adapters are not imported directly by the entrypoints. Instead, each adapter is
registered as a setuptools entrypoint under the `trellis.adapters` group, named by
the `datasource_type` which page requests use to select it.
"""

from importlib.metadata import EntryPoint, entry_points
from typing import Any

from trellis.exceptions import AdapterMissingException


def lookup_handler(name: str, group: str) -> EntryPoint:
    """Finds the entrypoint registered under a name, without importing it.

    :param name: The registered name, such as a datasource type (e.g. 'pagerduty').
    :param group: The entrypoint group to search (e.g. 'trellis.adapters').

    :raises AdapterMissingException: Nothing is registered under the name, which is
        reported to the caller as an invalid datasource configuration.
    """
    # Group selection moved from a dict interface to select() in Python 3.10.
    try:
        entrypoints = entry_points().select(group=group)
    except AttributeError:
        entrypoints = entry_points().get(group, ())  # type: ignore

    for candidate in entrypoints:
        if candidate.name == name:
            return candidate

    raise AdapterMissingException(
        f"Requested handler could not be found with name '{name}' (group '{group}')."
    )


def load_handler(name: str, group: str, *args: Any, **kwargs: Any) -> Any:
    """Imports a registered adapter, and creates an instance of it.

    Arguments after the group, such as the runtime context, are passed to the
    adapter's constructor.

    :param name: The registered name, such as a datasource type (e.g. 'servicenow').
    :param group: The entrypoint group to search (e.g. 'trellis.adapters').
    """
    cls = lookup_handler(name, group).load()

    return cls(*args, **kwargs)
