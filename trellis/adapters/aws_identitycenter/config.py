# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""AWS IAM Identity Center datasource configuration."""

from pydantic import Field

from trellis.models import CommonConfig


class Configuration(CommonConfig):
    """Defines the configuration document accepted by the Identity Center adapter.

    An example configuration document is as follows:

        {
            "region": "us-west-2",
            "identityStoreID": "d-1234567890",
            "instanceARN": "arn:aws:sso:::instance/ssoins-1234567890abcdef"
        }
    """

    region: str = Field(..., min_length=1)
    identity_store_id: str = Field(..., alias="identityStoreID", min_length=1)
    instance_arn: str = Field(..., alias="instanceARN", min_length=1)
