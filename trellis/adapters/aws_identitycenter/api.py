# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""AWS IAM Identity Center API client."""

from typing import Any, Dict, Optional

from boto3.session import Session

from trellis.adapters.aws.api import client_config, invoke
from trellis.types import ListResult


class Client:
    def __init__(
        self,
        access_key_id: str,
        secret_access_key: str,
        region: str,
        timeout: int,
        identity_store_id: str,
        instance_arn: str,
    ):
        """Setup a new Identity Center client.

        :param access_key_id: The AWS access key ID.
        :param secret_access_key: The AWS secret access key.
        :param region: The AWS region of the Identity Center instance.
        :param timeout: The number of seconds to wait for a response from AWS.
        :param identity_store_id: The ID of the identity store to read from.
        :param instance_arn: The ARN of the Identity Center instance to read from.
        """
        self.timeout = timeout
        self.identity_store_id = identity_store_id
        self.instance_arn = instance_arn

        config = client_config(timeout)

        # Explicit calls to session are mostly used to allow mocks during testing.
        session = Session(
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            region_name=region,
        )

        self._identitystore = session.client("identitystore", config=config)
        self._ssoadmin = session.client("sso-admin", config=config)

    def _list(
        self,
        client: Any,
        entity: str,
        operation: str,
        page_size: int,
        token: Optional[str],
        **kwargs,
    ) -> Dict[str, Any]:
        """Calls a paginated list operation."""
        if token is not None:
            kwargs["NextToken"] = token

        return invoke(
            client,
            operation,
            f"Failed to fetch AWS Identity Center entity: {entity}",
            self.timeout,
            MaxResults=page_size,
            **kwargs,
        )

    def get_permission_sets(self, page_size: int, token: Optional[str]) -> ListResult:
        """Lists a page of permission sets.

        Only the ARN of each permission set is returned by AWS, so each permission set
        is returned as an object with a single `Arn` attribute.

        :param page_size: The maximum number of permission sets to return.
        :param token: The token of the page to return, if not the first.

        :return: ListResult object containing the next token, and permission sets.
        """
        response = self._list(
            self._ssoadmin,
            "PermissionSet",
            "list_permission_sets",
            page_size,
            token,
            InstanceArn=self.instance_arn,
        )

        return ListResult(
            marker=response.get("NextToken"),
            entries=[{"Arn": arn} for arn in response.get("PermissionSets", [])],
        )

    def get_users(self, page_size: int, token: Optional[str]) -> ListResult:
        """Lists a page of users from the identity store."""
        response = self._list(
            self._identitystore,
            "User",
            "list_users",
            page_size,
            token,
            IdentityStoreId=self.identity_store_id,
        )

        return ListResult(
            marker=response.get("NextToken"),
            entries=response.get("Users", []),
        )

    def get_groups(self, page_size: int, token: Optional[str]) -> ListResult:
        """Lists a page of groups from the identity store."""
        response = self._list(
            self._identitystore,
            "Group",
            "list_groups",
            page_size,
            token,
            IdentityStoreId=self.identity_store_id,
        )

        return ListResult(
            marker=response.get("NextToken"),
            entries=response.get("Groups", []),
        )

    def get_group_memberships(
        self,
        group_id: str,
        page_size: int,
        token: Optional[str],
    ) -> ListResult:
        """Lists a page of the memberships of a group.

        The member of each membership is returned by AWS as a union, which is flattened
        to the ID of the member user.

        :param group_id: The ID of the group to list the memberships of.
        :param page_size: The maximum number of memberships to return.
        :param token: The token of the page to return, if not the first.

        :return: ListResult object containing the next token, and memberships.
        """
        response = self._list(
            self._identitystore,
            "GroupMembership",
            "list_group_memberships",
            page_size,
            token,
            IdentityStoreId=self.identity_store_id,
            GroupId=group_id,
        )

        memberships = response.get("GroupMemberships", [])
        for membership in memberships:
            member = membership.get("MemberId")
            if isinstance(member, dict):
                membership["MemberId"] = member.get("UserId")

        return ListResult(marker=response.get("NextToken"), entries=memberships)
