# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""AWS datasource configuration."""

from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Extra, Field

from trellis.exceptions import InvalidDatasourceConfigException
from trellis.models import CommonConfig, Request


class EntityOptions(BaseModel):
    """Defines per-entity options, such as the path prefix to filter entities by."""

    path_prefix: Optional[str] = Field(None, alias="pathPrefix")

    class Config:
        allow_population_by_field_name = True
        extra = Extra.forbid


class Configuration(CommonConfig):
    """Defines the configuration document accepted by the AWS adapter.

    An example configuration document is as follows:

        {
            "region": "us-west-2",
            "requestTimeoutSeconds": 120,
            "entityConfig": {"User": {"pathPrefix": "/engineering/"}},
            "resourceAccountRoles": [
                "arn:aws:iam::888111444333:role/Cross-Account-Assume-Admin",
                "arn:aws:iam::111111111111:role/Cross-Account-Assume-Admin"
            ]
        }

    Where resource account roles are provided, entities are read from each of these
    accounts in turn rather than the account of the provided credentials.
    """

    region: str = Field(..., min_length=1)
    entity_config: Dict[str, EntityOptions] = Field({}, alias="entityConfig")
    resource_account_roles: List[str] = Field([], alias="resourceAccountRoles")

    def path_prefix(self, entity: str) -> Optional[str]:
        """Returns the configured path prefix for an entity, if any."""
        options = self.entity_config.get(entity)
        if options is None:
            return None

        return options.path_prefix or None


def credentials(request: Request) -> Tuple[str, str]:
    """Returns the AWS access key ID and secret access key provided with a request.

    AWS credentials are provided using basic authentication, where the username is
    the access key ID and the password is the secret access key.

    :param request: The page request.

    :raises InvalidDatasourceConfigException: Credentials were not provided.

    :return: The access key ID, and the secret access key.
    """
    basic = request.auth.basic if request.auth else None
    if basic is None or not basic.username or not basic.password:
        raise InvalidDatasourceConfigException(
            "Provided datasource auth is missing required AWS authorization "
            "credentials."
        )

    return basic.username, basic.password
