# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""AWS IAM API client."""

import datetime
import logging
from typing import Any, Dict, Optional

from boto3.session import Session
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    ReadTimeoutError,
)

from trellis.adapters.aws.iam import EntityInfo
from trellis.exceptions import AccessException, InternalException
from trellis.helpers.http import request_timeout_message
from trellis.types import ListResult

SESSION_NAME = "TrellisSession"

logger = logging.getLogger(__name__)


def render(value: Any) -> Any:
    """Renders an AWS response value into a JSON compatible value.

    Date-times are returned by boto as datetime objects, which are rendered as RFC
    3339 strings. Naive date-times are assumed to be in UTC.

    :param value: The value to render.

    :return: The rendered value.
    """
    if isinstance(value, datetime.datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=datetime.timezone.utc)

        return value.isoformat()

    if isinstance(value, dict):
        return {k: render(v) for k, v in value.items()}

    if isinstance(value, list):
        return [render(v) for v in value]

    return value


def client_config(timeout: int) -> Config:
    """Returns a botocore client configuration which enforces the request timeout.

    Retries are disabled, as retries are the responsibility of the caller.
    """
    return Config(
        connect_timeout=timeout,
        read_timeout=timeout,
        retries={"total_max_attempts": 1},
    )


def invoke(
    client: Any,
    operation: str,
    failure: str,
    timeout: int,
    **kwargs,
) -> Dict[str, Any]:
    """Calls an AWS client operation, wrapping any errors.

    :param client: The boto client to call the operation on.
    :param operation: The name of the client operation to call.
    :param failure: A message describing what failed, used in error messages.
    :param timeout: The configured request timeout, used in error messages.

    :raises InternalException: The request failed.

    :return: The rendered response.
    """
    try:
        response = getattr(client, operation)(**kwargs)
    except ClientError as err:
        logger.error(
            "Datasource responded with an error",
            extra={"operation": operation, "error": str(err)},
        )
        raise InternalException(
            f"{failure}, error: {err}.",
            status_code=err.response.get("ResponseMetadata", {}).get("HTTPStatusCode"),
        )
    except (ConnectTimeoutError, ReadTimeoutError) as err:
        logger.error(
            "Datasource request timed out",
            extra={"operation": operation, "timeout": timeout},
        )
        raise InternalException(
            f"{failure}, error: {err}. {request_timeout_message(timeout)}"
        )
    except BotoCoreError as err:
        raise InternalException(f"{failure}, error: {err}.")

    response.pop("ResponseMetadata", None)

    return render(response)


class Client:
    def __init__(
        self,
        access_key_id: str,
        secret_access_key: str,
        region: str,
        timeout: int,
        role_arn: Optional[str] = None,
        offset: int = 0,
    ):
        """Setup a new IAM client.

        If a role is provided, it will be assumed using the provided credentials and
        all further requests will be made using the credentials of the assumed role.

        :param access_key_id: The AWS access key ID.
        :param secret_access_key: The AWS secret access key.
        :param region: The AWS region to connect to.
        :param timeout: The number of seconds to wait for a response from AWS.
        :param role_arn: An optional ARN of a role to assume.
        :param offset: The offset of the role within the configured resource account
            roles, used to generate a unique session name for each role.

        :raises AccessException: The role could not be assumed.
        """
        self.logger = logging.getLogger(__name__)
        self.timeout = timeout

        config = client_config(timeout)

        # Explicit calls to session are mostly used to allow mocks during testing.
        session = Session(
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            region_name=region,
        )

        if not role_arn:
            self._iam = session.client("iam", config=config)
            return

        self.logger.debug(
            "Attempting to assume AWS role for resource account",
            extra={"role_arn": role_arn, "offset": offset},
        )

        try:
            sts = session.client("sts", config=config)
            role = sts.assume_role(
                RoleArn=role_arn,
                RoleSessionName=f"{SESSION_NAME}-{offset}",
            )

            self._iam = session.client(
                "iam",
                config=config,
                aws_access_key_id=role["Credentials"]["AccessKeyId"],
                aws_secret_access_key=role["Credentials"]["SecretAccessKey"],
                aws_session_token=role["Credentials"]["SessionToken"],
            )
        except (ClientError, BotoCoreError, KeyError) as err:
            raise AccessException(f"Failed to assume role: {err}")

    def _call(self, entity: str, operation: str, **kwargs) -> Dict[str, Any]:
        """Calls an IAM operation on behalf of the named entity."""
        return invoke(
            self._iam,
            operation,
            f"Unable to fetch AWS entity: {entity}",
            self.timeout,
            **kwargs,
        )

    def list(
        self,
        entity: str,
        info: EntityInfo,
        page_size: int,
        marker: Optional[str] = None,
        path_prefix: Optional[str] = None,
        collection: Optional[str] = None,
    ) -> ListResult:
        """Lists a page of entries of an IAM entity.

        :param entity: The name of the entity to list.
        :param info: The description of the entity to list.
        :param page_size: The maximum number of entries to return.
        :param marker: The IAM marker of the page to return, if not the first.
        :param path_prefix: An optional path prefix to filter entries by.
        :param collection: The unique name of the collection item to list the members
            of. This is required for member entities.

        :return: ListResult object containing the IAM marker of the next page, and the
            listed entries.
        """
        parameters: Dict[str, Any] = {}

        # Unpaginated operations, such as listing SAML providers, accept no options.
        if info.paginated:
            parameters["MaxItems"] = page_size

            if marker is not None:
                parameters["Marker"] = marker

            if path_prefix is not None and info.member_of is None:
                parameters["PathPrefix"] = path_prefix

        if info.member_of is not None:
            parameters[f"{info.member_of.value}Name"] = collection

        response = self._call(entity, info.list_operation, **parameters)

        next_marker = None
        if response.get("IsTruncated"):
            next_marker = response.get("Marker")

        return ListResult(marker=next_marker, entries=response.get(info.list_key, []))

    def get(
        self,
        entity: str,
        info: EntityInfo,
        entry: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Fetches the details of a listed IAM entry.

        :param entity: The name of the entity to fetch.
        :param info: The description of the entity to fetch.
        :param entry: The listed entry to fetch the details of.

        :return: The details of the entry, or the entry itself if the entity does not
            support fetching details.
        """
        if info.get_operation is None or info.get_parameter is None:
            return entry

        response = self._call(
            entity,
            info.get_operation,
            **{info.get_parameter: entry.get(info.get_attribute or "")},
        )

        return response.get(info.get_key or "", {})
