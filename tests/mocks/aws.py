# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""Provides in-memory fakes of the AWS clients used by the AWS adapters.

moto does not honour `MaxItems` for every IAM operation, so these fakes are used
where the exact pages returned by AWS matter to a test.
"""

import datetime
from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError

CREATED = datetime.datetime(2024, 1, 2, 3, 4, 5)

DEFAULT_ACCOUNT = "000000000000"


def client_error(code: str, operation: str, status: int = 400) -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": f"{code} raised by fake"},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        operation,
    )


def page(items: List[Any], size: int, marker: Optional[str], prefix: str = "marker"):
    """Returns a page of items, and the marker of the next page if truncated."""
    start = int(marker.rsplit("-", 1)[1]) if marker else 0
    end = start + size

    if end < len(items):
        return items[start:end], f"{prefix}-{end}"

    return items[start:end], None


class Account:
    """The IAM entities of a single AWS account."""

    def __init__(self, account_id: str):
        self.account_id = account_id
        self.users: List[Dict[str, Any]] = []
        self.groups: List[Dict[str, Any]] = []
        self.roles: List[Dict[str, Any]] = []
        self.policies: List[Dict[str, Any]] = []
        self.saml_providers: List[Dict[str, Any]] = []
        self.members: Dict[str, List[str]] = {}
        self.attached: Dict[str, Dict[str, List[str]]] = {
            "Group": {},
            "Role": {},
            "User": {},
        }

    def arn(self, kind: str, name: str) -> str:
        return f"arn:aws:iam::{self.account_id}:{kind}/{name}"

    def add_user(self, name: str) -> "Account":
        self.users.append(
            {
                "UserName": name,
                "UserId": f"AIDA{name.upper()}",
                "Arn": self.arn("user", name),
                "Path": "/",
                "CreateDate": CREATED,
            }
        )
        return self

    def add_group(self, name: str, members: Optional[List[str]] = None) -> "Account":
        self.groups.append(
            {
                "GroupName": name,
                "GroupId": f"AGPA{name.upper()}",
                "Arn": self.arn("group", name),
                "Path": "/",
                "CreateDate": CREATED,
            }
        )
        self.members[name] = members or []
        return self

    def add_role(self, name: str) -> "Account":
        self.roles.append(
            {
                "RoleName": name,
                "RoleId": f"AROA{name.upper()}",
                "Arn": self.arn("role", name),
                "Path": "/",
                "CreateDate": CREATED,
            }
        )
        return self

    def add_policy(self, name: str) -> "Account":
        self.policies.append(
            {
                "PolicyName": name,
                "PolicyId": f"ANPA{name.upper()}",
                "Arn": self.arn("policy", name),
                "Path": "/",
                "CreateDate": CREATED,
            }
        )
        return self

    def add_saml_provider(self, name: str) -> "Account":
        self.saml_providers.append(
            {
                "Arn": self.arn("saml-provider", name),
                "ValidUntil": CREATED,
                "CreateDate": CREATED,
            }
        )
        return self

    def attach(self, kind: str, name: str, policies: List[str]) -> "Account":
        self.attached[kind][name] = policies
        return self


class Directory:
    """A set of AWS accounts, and a record of every call made against them."""

    def __init__(self, *accounts: Account):
        self.accounts = {account.account_id: account for account in accounts}
        self.calls: List[tuple] = []
        self.denied: List[str] = []

    def account(self, account_id: str) -> Account:
        return self.accounts.setdefault(account_id, Account(account_id))

    def calls_to(self, operation: str) -> List[Dict[str, Any]]:
        return [kwargs for name, _, kwargs in self.calls if name == operation]


class FakeIAM:
    def __init__(self, directory: Directory, account: Account):
        self.directory = directory
        self.account = account

    def _record(self, operation: str, kwargs: Dict[str, Any]):
        self.directory.calls.append((operation, self.account.account_id, kwargs))

    def _list(self, operation: str, key: str, items, **kwargs) -> Dict[str, Any]:
        self._record(operation, kwargs)

        prefix = kwargs.get("PathPrefix")
        if prefix:
            items = [item for item in items if item["Path"].startswith(prefix)]

        entries, marker = page(items, kwargs.get("MaxItems", 100), kwargs.get("Marker"))

        response = {
            key: [dict(entry) for entry in entries],
            "IsTruncated": marker is not None,
            "ResponseMetadata": {"HTTPStatusCode": 200},
        }
        if marker is not None:
            response["Marker"] = marker

        return response

    def _find(self, items, attribute: str, value: str, operation: str):
        for item in items:
            if item[attribute] == value:
                return dict(item)

        raise client_error("NoSuchEntity", operation, 404)

    def list_users(self, **kwargs):
        return self._list("list_users", "Users", self.account.users, **kwargs)

    def list_groups(self, **kwargs):
        return self._list("list_groups", "Groups", self.account.groups, **kwargs)

    def list_roles(self, **kwargs):
        return self._list("list_roles", "Roles", self.account.roles, **kwargs)

    def list_policies(self, **kwargs):
        return self._list("list_policies", "Policies", self.account.policies, **kwargs)

    def list_saml_providers(self, **kwargs):
        self._record("list_saml_providers", kwargs)
        return {
            "SAMLProviderList": [dict(item) for item in self.account.saml_providers],
            "ResponseMetadata": {"HTTPStatusCode": 200},
        }

    def get_user(self, UserName):
        self._record("get_user", {"UserName": UserName})
        return {
            "User": self._find(self.account.users, "UserName", UserName, "GetUser")
        }

    def get_role(self, RoleName):
        self._record("get_role", {"RoleName": RoleName})
        return {
            "Role": self._find(self.account.roles, "RoleName", RoleName, "GetRole")
        }

    def get_policy(self, PolicyArn):
        self._record("get_policy", {"PolicyArn": PolicyArn})
        return {
            "Policy": self._find(self.account.policies, "Arn", PolicyArn, "GetPolicy")
        }

    def get_group(self, GroupName, **kwargs):
        group = self._find(self.account.groups, "GroupName", GroupName, "GetGroup")
        users = [
            self._find(self.account.users, "UserName", name, "GetGroup")
            for name in self.account.members.get(GroupName, [])
        ]

        response = self._list(
            "get_group", "Users", users, GroupName=GroupName, **kwargs
        )
        response["Group"] = group

        return response

    def _attached(self, kind: str, name: str, **kwargs):
        policies = [
            {"PolicyName": policy, "PolicyArn": self.account.arn("policy", policy)}
            for policy in self.account.attached[kind].get(name, [])
        ]

        return self._list(
            f"list_attached_{kind.lower()}_policies",
            "AttachedPolicies",
            policies,
            **{f"{kind}Name": name},
            **kwargs,
        )

    def list_attached_group_policies(self, GroupName, **kwargs):
        return self._attached("Group", GroupName, **kwargs)

    def list_attached_role_policies(self, RoleName, **kwargs):
        return self._attached("Role", RoleName, **kwargs)

    def list_attached_user_policies(self, UserName, **kwargs):
        return self._attached("User", UserName, **kwargs)


class FakeSTS:
    def __init__(self, directory: Directory):
        self.directory = directory

    def assume_role(self, RoleArn, RoleSessionName):
        self.directory.calls.append(
            (
                "assume_role",
                None,
                {"RoleArn": RoleArn, "RoleSessionName": RoleSessionName},
            )
        )

        if RoleArn in self.directory.denied:
            raise client_error("AccessDenied", "AssumeRole", 403)

        # The access key ID of the assumed role identifies the account.
        account_id = RoleArn.split(":")[4]
        return {
            "Credentials": {
                "AccessKeyId": account_id,
                "SecretAccessKey": "secret",
                "SessionToken": "token",
            }
        }


class FakeIdentityStore:
    """Fakes the Identity Store, where groups hold the IDs of their member users."""

    def __init__(self, directory: "IdentityCenter"):
        self.directory = directory

    def _list(self, operation: str, key: str, items, **kwargs):
        self.directory.calls.append((operation, kwargs))

        entries, token = page(
            items, kwargs["MaxResults"], kwargs.get("NextToken"), prefix="token"
        )

        response = {key: [dict(entry) for entry in entries]}
        if token is not None:
            response["NextToken"] = token

        return response

    def list_users(self, **kwargs):
        return self._list("list_users", "Users", self.directory.users, **kwargs)

    def list_groups(self, **kwargs):
        return self._list("list_groups", "Groups", self.directory.groups, **kwargs)

    def list_group_memberships(self, GroupId, **kwargs):
        memberships = [
            {
                "IdentityStoreId": kwargs.get("IdentityStoreId"),
                "MembershipId": f"{GroupId}-{user}",
                "GroupId": GroupId,
                "MemberId": {"UserId": user},
            }
            for user in self.directory.members.get(GroupId, [])
        ]

        return self._list(
            "list_group_memberships",
            "GroupMemberships",
            memberships,
            GroupId=GroupId,
            **kwargs,
        )


class FakeSSOAdmin:
    def __init__(self, directory: "IdentityCenter"):
        self.directory = directory

    def list_permission_sets(self, **kwargs):
        self.directory.calls.append(("list_permission_sets", kwargs))

        entries, token = page(
            self.directory.permission_sets,
            kwargs["MaxResults"],
            kwargs.get("NextToken"),
            prefix="token",
        )

        response: Dict[str, Any] = {"PermissionSets": entries}
        if token is not None:
            response["NextToken"] = token

        return response


class IdentityCenter:
    """The users, groups, and permission sets of an Identity Center instance."""

    def __init__(self):
        self.users: List[Dict[str, Any]] = []
        self.groups: List[Dict[str, Any]] = []
        self.members: Dict[str, List[str]] = {}
        self.permission_sets: List[str] = []
        self.calls: List[tuple] = []

    def add_user(self, user_id: str) -> "IdentityCenter":
        self.users.append({"UserId": user_id, "UserName": f"{user_id}@example.com"})
        return self

    def add_group(self, group_id: str, members: List[str]) -> "IdentityCenter":
        self.groups.append({"GroupId": group_id, "DisplayName": group_id.title()})
        self.members[group_id] = members
        return self


class FakeSession:
    """Fakes `boto3.session.Session`, returning clients bound to the fake directory.

    Bind a directory before patching, for example:

        patch("trellis.adapters.aws.api.Session", FakeSession.bind(directory))
    """

    def __init__(
        self,
        directory: Any,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        region_name: Optional[str] = None,
    ):
        self.directory = directory
        self.region_name = region_name

    @classmethod
    def bind(cls, directory: Any):
        def factory(**kwargs):
            return cls(directory, **kwargs)

        return factory

    def client(
        self,
        service: str,
        config: Any = None,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        aws_session_token: Optional[str] = None,
    ):
        if service == "iam":
            account = self.directory.account(aws_access_key_id or DEFAULT_ACCOUNT)
            return FakeIAM(self.directory, account)

        if service == "sts":
            return FakeSTS(self.directory)

        if service == "identitystore":
            return FakeIdentityStore(self.directory)

        if service == "sso-admin":
            return FakeSSOAdmin(self.directory)

        raise ValueError(f"Service {service} is not faked")
