# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""Implements tests for plugin helpers."""

import unittest

from trellis.adapters.pagerduty.adapter import Adapter
from trellis.constants import ERROR_CODE_INVALID_DATASOURCE_CONFIG, PLUGIN_GROUP_ADAPTER
from trellis.exceptions import AdapterMissingException
from trellis.helpers import plugin
from tests import mocks


class PluginHelpersTestCase(unittest.TestCase):
    """Implements tests for plugin helpers."""

    def test_lookup_handler(self):
        """Ensure registered adapters can be located by name."""
        for name in ("aws", "aws_identitycenter", "servicenow", "pagerduty"):
            handler = plugin.lookup_handler(name, PLUGIN_GROUP_ADAPTER)
            self.assertEqual(handler.name, name)
            self.assertEqual(handler.value, f"trellis.adapters.{name}.adapter:Adapter")

    def test_load_handler(self):
        """Ensure handlers are created using any provided arguments."""
        adapter = plugin.load_handler(
            "pagerduty",
            PLUGIN_GROUP_ADAPTER,
            context={"runtime": "test"},
            settings=mocks.settings(),
        )

        self.assertIsInstance(adapter, Adapter)
        self.assertEqual(adapter.runtime_context, {"runtime": "test"})

    def test_missing_handler(self):
        """Ensure missing handlers are reported as an invalid datasource."""
        with self.assertRaisesRegex(AdapterMissingException, "okta") as context:
            plugin.load_handler("okta", PLUGIN_GROUP_ADAPTER)

        self.assertEqual(context.exception.code, ERROR_CODE_INVALID_DATASOURCE_CONFIG)
