# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""Data models used throughout Trellis."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, BaseSettings, Extra, Field, root_validator, validator

from trellis.constants import (
    ATTRIBUTE_TYPE_BOOL,
    ATTRIBUTE_TYPE_DATETIME,
    ATTRIBUTE_TYPE_DOUBLE,
    ATTRIBUTE_TYPE_DURATION,
    ATTRIBUTE_TYPE_INT64,
    ATTRIBUTE_TYPE_STRING,
    DEFAULT_LOCAL_TIME_ZONE_OFFSET,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    ENV_PREFIX,
)

ATTRIBUTE_TYPES = (
    ATTRIBUTE_TYPE_BOOL,
    ATTRIBUTE_TYPE_DATETIME,
    ATTRIBUTE_TYPE_DOUBLE,
    ATTRIBUTE_TYPE_DURATION,
    ATTRIBUTE_TYPE_INT64,
    ATTRIBUTE_TYPE_STRING,
)


class AttributeConfig(BaseModel, extra=Extra.forbid):
    """Defines an attribute requested for an entity.

    The external identifier is the name of the attribute in the datasource response.
    Depending on the adapter, this may be a plain key, or a JSONPath expression such
    as `$.profile.email`.
    """

    external_id: str
    type: str = Field(ATTRIBUTE_TYPE_STRING)  # noqa: A003
    list: bool = Field(False)  # noqa: A003
    unique_id: bool = Field(False)

    @validator("type")
    def _validate_type(cls, value):  # noqa: B902
        """Ensures that only supported attribute types are requested."""
        if value not in ATTRIBUTE_TYPES:
            raise ValueError(f"Attribute type '{value}' is not supported")

        return value


class EntityConfig(BaseModel, extra=Extra.forbid):
    """Defines the entity requested, including attributes and any child entities."""

    external_id: str
    attributes: List[AttributeConfig] = Field([])
    child_entities: List["EntityConfig"] = Field([])

    def attribute(self, external_id: str) -> Optional[AttributeConfig]:
        """Returns the requested attribute with the given external identifier.

        :param external_id: The external identifier of the attribute to find.

        :return: The attribute configuration, or None if it was not requested.
        """
        for attribute in self.attributes:
            if attribute.external_id == external_id:
                return attribute

        return None

    @property
    def has_unique_id(self) -> bool:
        return any(attribute.unique_id for attribute in self.attributes)


EntityConfig.update_forward_refs()


class BasicAuth(BaseModel, extra=Extra.forbid):
    username: str = Field("")
    password: str = Field("")


class Auth(BaseModel, extra=Extra.forbid):
    """Credentials provided with a page request.

    Only one of basic authentication, or a pre-rendered HTTP authorization header,
    is expected to be set.
    """

    basic: Optional[BasicAuth] = None
    http_authorization: str = Field("")


class Request(BaseModel, extra=Extra.forbid):
    """Defines a request for a single page of objects from a datasource.

    The cursor is opaque to the caller. It must be empty on the first request of a
    sync, and must be set to the `next_cursor` of the previous page on every following
    request.
    """

    datasource_type: str = Field("")
    address: str = Field("")
    auth: Optional[Auth] = None
    entity: EntityConfig
    page_size: int
    cursor: str = Field("")
    ordered: bool = Field(False)

    # Datasource configuration is validated by each adapter, as each adapter defines
    # its own configuration fields.
    config: Dict[str, Any] = Field({})


class CommonConfig(BaseModel):
    """Defines configuration fields which are shared by all adapters.

    Adapters extend this model with their own datasource specific fields. Fields are
    provided by callers in camel case, as is convention for datasource configuration
    documents.
    """

    request_timeout_seconds: int = Field(
        DEFAULT_REQUEST_TIMEOUT_SECONDS,
        alias="requestTimeoutSeconds",
        gt=0,
    )

    # The offset, in seconds east of UTC, to apply to date-times which are returned by
    # the datasource without a time zone.
    local_time_zone_offset: int = Field(
        DEFAULT_LOCAL_TIME_ZONE_OFFSET,
        alias="localTimeZoneOffset",
    )

    class Config:
        allow_population_by_field_name = True
        extra = Extra.allow


class Page(BaseModel, extra=Extra.forbid):
    objects: List[Dict[str, Any]] = Field([])

    # An empty next cursor indicates that the sync is complete.
    next_cursor: str = Field("")


class AdapterError(BaseModel, extra=Extra.forbid):
    message: str
    code: str
    retry_after: Optional[str] = None


class Response(BaseModel, extra=Extra.forbid):
    """Defines the result of a page request, which is either a page or an error."""

    success: Optional[Page] = None
    error: Optional[AdapterError] = None

    @root_validator
    def _validate_result(cls, values):  # noqa: B902
        """Ensures that exactly one of success or error is set."""
        if (values.get("success") is None) == (values.get("error") is None):
            raise ValueError("Exactly one of 'success' or 'error' must be set")

        return values


class Settings(BaseSettings):
    """Defines environment variables used to configure the Trellis runtime.

    This should also include any appropriate default values for fields which are not
    required.
    """

    max_concurrency: int = Field(
        DEFAULT_MAX_CONCURRENCY,
        description="The maximum number of concurrent detail requests for a page.",
        gt=0,
    )
    log_level: str = Field(
        "INFO",
        description="The minimum level of log messages to emit.",
    )

    class Config:
        """Allow environment variable override of configuration fields.

        This also enforce a prefix for all environment variables. As an example the
        field `max_concurrency` would be set using the environment variable
        `TRELLIS_MAX_CONCURRENCY`.
        """

        env_prefix = ENV_PREFIX
        case_insensitive = True
