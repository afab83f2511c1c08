# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""Provides ServiceNow advanced filters.

Advanced filters restrict the objects returned for an entity to those related to a
"scope" of groups. Two kinds of filter are derived from the configured scopes:

    1. Implicit filters, which read the scope groups, their member users, or the
       memberships between the two.
    2. Related filters, which read entities such as incidents whose filter refers to
       attributes of the scope groups, or of their members, using a template such as
       `assignment_groupIN{$.sys_user_group.sys_id}`.
"""

import re
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Extra, Field

USER = "sys_user"
GROUP = "sys_user_group"
GROUP_MEMBER = "sys_user_grmember"
CASE = "sn_customerservice_case"
INCIDENT = "incident"
CHANGE_REQUEST = "change_request"
CHANGE_TASK = "change_task"

SUPPORTED_SCOPE_ENTITY = GROUP
SUPPORTED_IMPLICIT_ENTITIES = (USER, GROUP, GROUP_MEMBER)
SUPPORTED_RELATED_ENTITIES = (CASE, INCIDENT, CHANGE_REQUEST, CHANGE_TASK)

# Matches templates such as `{$.sys_user.sys_id}`, capturing the entity and attribute.
TEMPLATE = re.compile(r"\{\$\.([a-zA-Z_]+)\.([a-zA-Z_]+)\}")


class FilterModel(BaseModel):
    class Config:
        allow_population_by_field_name = True
        extra = Extra.forbid


class RelatedEntityFilter(FilterModel):
    related_entity: str = Field(..., alias="relatedEntity")
    related_entity_filter: str = Field("", alias="relatedEntityFilter")


class MemberFilter(FilterModel):
    member_entity: str = Field(..., alias="memberEntity")
    member_entity_filter: str = Field("", alias="memberEntityFilter")
    related_entities: List[RelatedEntityFilter] = Field([], alias="relatedEntities")


class EntityFilter(FilterModel):
    """Defines a scope of objects, and optionally the members of those objects."""

    scope_entity: str = Field(..., alias="scopeEntity")
    scope_entity_filter: str = Field("", alias="scopeEntityFilter")
    members: List[MemberFilter] = Field([])
    related_entities: List[RelatedEntityFilter] = Field([], alias="relatedEntities")


class RelatedFilter(FilterModel):
    """Defines a filter for an entity which refers to objects within a scope."""

    entity: str
    entity_filter: str = Field("", alias="entityFilter")
    related_entity: EntityFilter = Field(..., alias="relatedEntity")


class AdvancedFilters(FilterModel):
    scoped_objects: Dict[str, List[EntityFilter]] = Field(
        {},
        alias="getObjectsByScope",
    )


def extract_implicit_filters(
    advanced: AdvancedFilters,
) -> Dict[str, List[EntityFilter]]:
    """Derives the implicit filters for each supported entity.

    For each scope of groups:

        1. Groups are always filtered by the scope.
        2. Users, and group memberships, are filtered by the scope and the filter of
           each user member filter, where any are configured.
        3. Groups are additionally filtered by each group member filter, where any are
           configured.

    :param advanced: The configured advanced filters.

    :return: The implicit filters, keyed by entity.
    """
    implicit: Dict[str, List[EntityFilter]] = {}

    for scope in advanced.scoped_objects.get(SUPPORTED_SCOPE_ENTITY, []):
        users: List[MemberFilter] = []
        groups: List[MemberFilter] = []

        for member in scope.members:
            stripped = MemberFilter(
                member_entity=member.member_entity,
                member_entity_filter=member.member_entity_filter,
            )

            if member.member_entity == USER:
                users.append(stripped)
            elif member.member_entity == GROUP:
                groups.append(stripped)

        if users:
            for entity in (USER, GROUP_MEMBER):
                implicit.setdefault(entity, []).append(
                    EntityFilter(
                        scope_entity=scope.scope_entity,
                        scope_entity_filter=scope.scope_entity_filter,
                        members=users,
                    )
                )

        if scope.scope_entity == GROUP:
            implicit.setdefault(GROUP, []).append(
                EntityFilter(
                    scope_entity=scope.scope_entity,
                    scope_entity_filter=scope.scope_entity_filter,
                )
            )

        if groups:
            implicit.setdefault(GROUP, []).append(
                EntityFilter(
                    scope_entity=scope.scope_entity,
                    scope_entity_filter=scope.scope_entity_filter,
                    members=groups,
                )
            )

    return implicit


def extract_related_filters(
    advanced: AdvancedFilters,
) -> Dict[str, List[RelatedFilter]]:
    """Derives the related filters for each supported related entity.

    Related entities may be configured against a scope, or against a member of a
    scope. In the latter case the related filter is scoped to that member only.

    :param advanced: The configured advanced filters.

    :return: The related filters, keyed by entity.
    """
    related: Dict[str, List[RelatedFilter]] = {}

    for scopes in advanced.scoped_objects.values():
        for scope in scopes:
            for member in scope.members:
                for candidate in member.related_entities:
                    if candidate.related_entity not in SUPPORTED_RELATED_ENTITIES:
                        continue

                    scoped_member = MemberFilter(
                        member_entity=member.member_entity,
                        member_entity_filter=member.member_entity_filter,
                    )

                    related.setdefault(candidate.related_entity, []).append(
                        RelatedFilter(
                            entity=candidate.related_entity,
                            entity_filter=candidate.related_entity_filter,
                            related_entity=EntityFilter(
                                scope_entity=scope.scope_entity,
                                scope_entity_filter=scope.scope_entity_filter,
                                members=[scoped_member],
                            ),
                        )
                    )

            for candidate in scope.related_entities:
                if candidate.related_entity not in SUPPORTED_RELATED_ENTITIES:
                    continue

                related.setdefault(candidate.related_entity, []).append(
                    RelatedFilter(
                        entity=candidate.related_entity,
                        entity_filter=candidate.related_entity_filter,
                        related_entity=EntityFilter(
                            scope_entity=scope.scope_entity,
                            scope_entity_filter=scope.scope_entity_filter,
                        ),
                    )
                )

    return related


def extract_entity_and_attribute(value: str) -> Tuple[Optional[str], Optional[str]]:
    """Extracts the entity and attribute referred to by a filter template.

    :param value: A filter such as `assignment_groupIN{$.sys_user_group.sys_id}`.

    :return: The entity and attribute, or None for both if no template was found.
    """
    match = TEMPLATE.search(value)
    if not match:
        return None, None

    return match.group(1), match.group(2)


def replace_entity_and_attribute(value: str, replacement: str) -> str:
    """Replaces all filter templates in a filter with the provided value."""
    return TEMPLATE.sub(lambda _: replacement, value)
