# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""PagerDuty datasource configuration."""

from typing import Dict, List, Union

from pydantic import Field, StrictStr, validator

from trellis.models import CommonConfig

QueryValue = Union[StrictStr, List[StrictStr]]


class Configuration(CommonConfig):
    """Defines the configuration document accepted by the PagerDuty adapter.

    An example configuration document is as follows:

        {
            "requestTimeoutSeconds": 10,
            "additionalQueryParameters": {
                "users": {
                    "query": "user",
                    "include[]": ["contact_methods", "teams"]
                }
            }
        }

    Additional query parameters are not validated against the PagerDuty API, so an
    invalid parameter value may cause PagerDuty to reject the request.
    """

    additional_query_parameters: Dict[str, Dict[str, QueryValue]] = Field(
        {},
        alias="additionalQueryParameters",
    )

    @validator("additional_query_parameters")
    def _validate_query_parameters(cls, value):  # noqa: B902
        """Ensures that no query parameter values are empty."""
        for entity, parameters in value.items():
            for name, candidate in parameters.items():
                if isinstance(candidate, str):
                    candidate = [candidate]
                elif not candidate:
                    raise ValueError(f"[{entity}][{name}] is an empty list")

                if any(item == "" for item in candidate):
                    raise ValueError(f"[{entity}][{name}] contains an empty string")

        return value

    def query_parameters(self, entity: str) -> List[tuple]:
        """Returns the additional query parameters for an entity, as pairs."""
        pairs = []

        for name, candidate in self.additional_query_parameters.get(entity, {}).items():
            values = [candidate] if isinstance(candidate, str) else candidate
            pairs.extend((name, item) for item in values)

        return pairs
