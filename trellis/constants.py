# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""Constants used throughout Trellis."""

# Error codes returned to callers. These must remain stable, as callers use them to
# decide whether a failed page request should be retried.
ERROR_CODE_INVALID_DATASOURCE_CONFIG = "ERROR_CODE_INVALID_DATASOURCE_CONFIG"
ERROR_CODE_INVALID_ENTITY_CONFIG = "ERROR_CODE_INVALID_ENTITY_CONFIG"
ERROR_CODE_INVALID_PAGE_REQUEST_CONFIG = "ERROR_CODE_INVALID_PAGE_REQUEST_CONFIG"
ERROR_CODE_DATASOURCE_FAILED = "ERROR_CODE_DATASOURCE_FAILED"
ERROR_CODE_INTERNAL = "ERROR_CODE_INTERNAL"

# Attribute types supported during conversion of datasource objects.
ATTRIBUTE_TYPE_STRING = "String"
ATTRIBUTE_TYPE_BOOL = "Bool"
ATTRIBUTE_TYPE_INT64 = "Int64"
ATTRIBUTE_TYPE_DOUBLE = "Double"
ATTRIBUTE_TYPE_DATETIME = "DateTime"
ATTRIBUTE_TYPE_DURATION = "Duration"

# Common datasource configuration defaults.
DEFAULT_REQUEST_TIMEOUT_SECONDS = 120
DEFAULT_LOCAL_TIME_ZONE_OFFSET = 0

# Maximum number of concurrent detail requests performed for a single page.
DEFAULT_MAX_CONCURRENCY = 20

# Environment variables are read with this prefix by the runtime settings model.
ENV_PREFIX = "TRELLIS_"

# Plugin groups (setuptools entrypoints).
PLUGIN_GROUP_ADAPTER = "trellis.adapters"
PLUGIN_GROUP_ENTRYPOINT = "trellis.entrypoints"
