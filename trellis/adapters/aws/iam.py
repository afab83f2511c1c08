# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""Describes the AWS IAM entities supported by the AWS adapter.

Each entity is described by an `EntityInfo` which names the IAM operations used to
list, and optionally fetch the details of, the entity. Member entities also name the
entity they are a member of, and the attribute which uniquely identifies a member.
"""

from enum import Enum
from types import MappingProxyType
from typing import Mapping, NamedTuple, Optional


class Entity(str, Enum):
    USER = "User"
    GROUP = "Group"
    ROLE = "Role"
    POLICY = "Policy"
    IDENTITY_PROVIDER = "IdentityProvider"
    GROUP_MEMBER = "GroupMember"
    GROUP_POLICY = "GroupPolicy"
    ROLE_POLICY = "RolePolicy"
    USER_POLICY = "UserPolicy"


class EntityInfo(NamedTuple):
    """Describes how an IAM entity is listed, fetched, and identified."""

    # The IAM client operation used to list the entity, and the response key which
    # holds the listed entries.
    list_operation: str
    list_key: str

    # The attribute containing the ARN of the entity, used to extract the account ID.
    arn_attribute: str

    # The attribute which uniquely names the entity, used when the entity is the
    # collection of a member entity.
    unique_name: Optional[str] = None

    # The IAM client operation used to fetch the details of a listed entry, the
    # request parameter and entry attribute used to identify the entry, and the
    # response key which holds the details.
    get_operation: Optional[str] = None
    get_parameter: Optional[str] = None
    get_attribute: Optional[str] = None
    get_key: Optional[str] = None

    # Member entities only.
    member_of: Optional["Entity"] = None
    member_attribute: Optional[str] = None

    # Whether the list operation supports native pagination and path prefixes.
    paginated: bool = True

    @property
    def is_member(self) -> bool:
        return self.member_of is not None


ENTITIES: Mapping[Entity, EntityInfo] = MappingProxyType(
    {
        Entity.USER: EntityInfo(
            list_operation="list_users",
            list_key="Users",
            arn_attribute="Arn",
            unique_name="UserName",
            get_operation="get_user",
            get_parameter="UserName",
            get_attribute="UserName",
            get_key="User",
        ),
        Entity.GROUP: EntityInfo(
            list_operation="list_groups",
            list_key="Groups",
            arn_attribute="Arn",
            unique_name="GroupName",
            get_operation="get_group",
            get_parameter="GroupName",
            get_attribute="GroupName",
            get_key="Group",
        ),
        Entity.ROLE: EntityInfo(
            list_operation="list_roles",
            list_key="Roles",
            arn_attribute="Arn",
            unique_name="RoleName",
            get_operation="get_role",
            get_parameter="RoleName",
            get_attribute="RoleName",
            get_key="Role",
        ),
        Entity.POLICY: EntityInfo(
            list_operation="list_policies",
            list_key="Policies",
            arn_attribute="Arn",
            unique_name="PolicyName",
            get_operation="get_policy",
            get_parameter="PolicyArn",
            get_attribute="Arn",
            get_key="Policy",
        ),
        Entity.IDENTITY_PROVIDER: EntityInfo(
            list_operation="list_saml_providers",
            list_key="SAMLProviderList",
            arn_attribute="Arn",
            paginated=False,
        ),
        Entity.GROUP_MEMBER: EntityInfo(
            list_operation="get_group",
            list_key="Users",
            arn_attribute="Arn",
            member_of=Entity.GROUP,
            member_attribute="UserId",
        ),
        Entity.GROUP_POLICY: EntityInfo(
            list_operation="list_attached_group_policies",
            list_key="AttachedPolicies",
            arn_attribute="PolicyArn",
            member_of=Entity.GROUP,
            member_attribute="PolicyArn",
        ),
        Entity.ROLE_POLICY: EntityInfo(
            list_operation="list_attached_role_policies",
            list_key="AttachedPolicies",
            arn_attribute="PolicyArn",
            member_of=Entity.ROLE,
            member_attribute="PolicyArn",
        ),
        Entity.USER_POLICY: EntityInfo(
            list_operation="list_attached_user_policies",
            list_key="AttachedPolicies",
            arn_attribute="PolicyArn",
            member_of=Entity.USER,
            member_attribute="PolicyArn",
        ),
    }
)


def collection_of(info: EntityInfo) -> EntityInfo:
    """Returns the description of the collection entity of a member entity.

    :param info: The description of a member entity.

    :raises ValueError: The entity is not a member entity.

    :return: The description of the collection entity.
    """
    if info.member_of is None:
        raise ValueError("Entity is not a member entity")

    return ENTITIES[info.member_of]


def account_id_from_arn(arn: str) -> str:
    """Extracts the account ID from an ARN.

    :param arn: The ARN to parse, such as `arn:aws:iam::123456789012:user/alice`.

    :raises ValueError: The ARN could not be parsed.

    :return: The account ID.
    """
    parts = arn.split(":", 5)
    if len(parts) != 6 or parts[0] != "arn":
        raise ValueError(f"arn: invalid prefix or number of sections in '{arn}'")

    return parts[4]
