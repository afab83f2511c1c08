# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""ServiceNow datasource configuration."""

from typing import Dict, Optional

from pydantic import Field, validator

from trellis.adapters.servicenow.filters import AdvancedFilters
from trellis.models import CommonConfig

SUPPORTED_API_VERSIONS = ("v2",)


class Configuration(CommonConfig):
    """Defines the configuration document accepted by the ServiceNow adapter.

    An example configuration document is as follows:

        {
            "requestTimeoutSeconds": 10,
            "localTimeZoneOffset": 43200,
            "apiVersion": "v2",
            "filters": {
                "incident": "active=true^priority=1"
            }
        }

    Filters are ServiceNow encoded queries, keyed by the table they apply to.
    """

    api_version: str = Field(..., alias="apiVersion")
    filters: Dict[str, str] = Field({})
    advanced_filters: Optional[AdvancedFilters] = Field(None, alias="advancedFilters")

    @validator("api_version")
    def _validate_api_version(cls, value):  # noqa: B902
        """Ensures that only supported API versions are used."""
        if value not in SUPPORTED_API_VERSIONS:
            raise ValueError(f"apiVersion is not supported: {value}")

        return value
