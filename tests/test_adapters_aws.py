# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""Implements tests for the AWS IAM adapter."""

import base64
import json
import unittest
from unittest.mock import patch

import boto3
from moto import mock_aws

from trellis.adapters.aws import iam
from trellis.adapters.aws.adapter import Adapter
from trellis.adapters.aws.api import invoke, render
from trellis.constants import (
    ERROR_CODE_INTERNAL,
    ERROR_CODE_INVALID_DATASOURCE_CONFIG,
    ERROR_CODE_INVALID_ENTITY_CONFIG,
    ERROR_CODE_INVALID_PAGE_REQUEST_CONFIG,
)
from trellis.exceptions import InternalException
from trellis.pagination import unmarshal_cursor
from trellis.pagination.accounts import decode_account_cursor
from tests import mocks
from tests.mocks.aws import (
    CREATED,
    DEFAULT_ACCOUNT,
    Account,
    Directory,
    FakeSession,
    client_error,
)

ROLES = [
    "arn:aws:iam::111111111111:role/Trellis-Reader",
    "arn:aws:iam::222222222222:role/Trellis-Reader",
]


def decode(cursor: str):
    return json.loads(base64.b64decode(cursor))


class AWSAdapterTestCase(unittest.TestCase):
    """Implements tests for the AWS IAM adapter."""

    def setUp(self):
        """Ensure the application is setup for testing."""
        self.adapter = Adapter(settings=mocks.settings())
        self.directory = Directory(Account(DEFAULT_ACCOUNT))

    def request(self, entity, attributes, unique, cursor="", page_size=2, **config):
        return mocks.page_request(
            entity,
            attributes,
            unique=unique,
            page_size=page_size,
            cursor=cursor,
            config={"region": "us-east-1", **config},
            username="AKIAEXAMPLE",
            password="secret",
        )

    def get_page(self, request):
        session = FakeSession.bind(self.directory)
        with patch("trellis.adapters.aws.api.Session", session):
            return self.adapter.get_page(request)

    def sync(self, entity, attributes, unique, page_size=2, **config):
        """Requests pages until the sync is complete, returning every page."""
        pages = []
        cursor = ""

        while True:
            response = self.get_page(
                self.request(entity, attributes, unique, cursor, page_size, **config)
            )
            self.assertIsNone(response.error, response.error)

            pages.append(response.success)
            cursor = response.success.next_cursor
            if not cursor:
                return pages

            self.assertLess(len(pages), 20, "Sync did not complete")

    def test_users(self):
        """Ensure users are paged, with the details of each user fetched."""
        self.directory.account(DEFAULT_ACCOUNT).add_user("alice").add_user(
            "bob"
        ).add_user("carol")

        pages = self.sync("User", ["UserName", "Arn", "CreateDate"], "UserName")

        self.assertEqual(len(pages), 2)
        self.assertEqual(
            [user["UserName"] for page in pages for user in page.objects],
            ["alice", "bob", "carol"],
        )
        self.assertEqual(
            pages[0].objects[0]["Arn"], "arn:aws:iam::000000000000:user/alice"
        )
        self.assertEqual(
            pages[0].objects[0]["CreateDate"], "2024-01-02T03:04:05+00:00"
        )

        # Each listed user is fetched for its details.
        self.assertEqual(len(self.directory.calls_to("get_user")), 3)
        self.assertEqual(
            self.directory.calls_to("list_users"),
            [{"MaxItems": 2}, {"MaxItems": 2, "Marker": "marker-2"}],
        )

    def test_policies_native_marker(self):
        """Ensure intermediate pages carry the native marker, wrapped in a cursor."""
        account = self.directory.account(DEFAULT_ACCOUNT)
        for name in ("ReadOnly", "Admin", "Billing", "Support", "Audit"):
            account.add_policy(name)

        pages = self.sync("Policy", ["PolicyName", "Arn"], "Arn")

        self.assertEqual(len(pages), 3)
        self.assertEqual(decode(pages[0].next_cursor), {"cursor": "marker-2"})
        self.assertEqual(decode(pages[1].next_cursor), {"cursor": "marker-4"})
        self.assertEqual(pages[2].next_cursor, "")
        self.assertEqual(len(self.directory.calls_to("get_policy")), 5)

    def test_path_prefix(self):
        """Ensure the configured path prefix is passed to list calls."""
        self.directory.account(DEFAULT_ACCOUNT).add_role("deployer")

        self.sync(
            "Role",
            ["RoleName"],
            "RoleName",
            entityConfig={"Role": {"pathPrefix": "/"}},
        )

        self.assertEqual(
            self.directory.calls_to("list_roles"),
            [{"MaxItems": 2, "PathPrefix": "/"}],
        )

    def test_identity_providers(self):
        """Ensure identity providers are paged locally, as AWS does not page them."""
        account = self.directory.account(DEFAULT_ACCOUNT)
        for name in ("okta", "entra", "google"):
            account.add_saml_provider(name)

        pages = self.sync("IdentityProvider", ["Arn", "ValidUntil"], "Arn")

        self.assertEqual(len(pages), 2)
        self.assertEqual(decode(pages[0].next_cursor), {"cursor": "2"})
        self.assertEqual(len(pages[1].objects), 1)

        # Filtering is not supported by AWS for identity providers.
        response = self.get_page(
            self.request(
                "IdentityProvider",
                ["Arn"],
                "Arn",
                entityConfig={"IdentityProvider": {"pathPrefix": "/"}},
            )
        )
        self.assertEqual(response.error.code, ERROR_CODE_INVALID_ENTITY_CONFIG)
        self.assertIn("does not supports filtering", response.error.message)

    def test_group_members(self):
        """Ensure members are paged one group at a time, until all groups are done."""
        account = self.directory.account(DEFAULT_ACCOUNT)
        for name in ("user1", "user2"):
            account.add_user(name)

        account.add_group("Group1", ["user1", "user2"])
        account.add_group("Group2", ["user1"])
        account.add_group("Group3", [])

        pages = self.sync("GroupMember", ["id", "UserName", "GroupName"], "id")

        self.assertEqual(
            [[member["id"] for member in page.objects] for page in pages],
            [
                ["AIDAUSER1-Group1", "AIDAUSER2-Group1"],
                ["AIDAUSER1-Group2"],
                [],
            ],
        )
        self.assertEqual(pages[1].objects[0]["GroupName"], "Group2")

        # The first cursor points at the next group, with no position in Group1.
        cursor = unmarshal_cursor(pages[0].next_cursor)
        self.assertIsNone(cursor.cursor)
        self.assertEqual(cursor.collection_id, "Group1")
        self.assertEqual(cursor.collection_cursor, "marker-1")

        # Groups are always read one at a time.
        self.assertTrue(
            all(
                call["MaxItems"] == 1
                for call in self.directory.calls_to("list_groups")
            )
        )

    def test_group_members_paged_within_group(self):
        """Ensure large groups are paged before moving onto the next group."""
        account = self.directory.account(DEFAULT_ACCOUNT)
        for name in ("a", "b", "c"):
            account.add_user(name)

        account.add_group("Big", ["a", "b", "c"])

        pages = self.sync("GroupMember", ["id"], "id")

        self.assertEqual(len(pages), 2)

        cursor = unmarshal_cursor(pages[0].next_cursor)
        self.assertEqual(cursor.cursor, "marker-2")
        self.assertEqual(cursor.collection_id, "Big")
        self.assertIsNone(cursor.collection_cursor)

    def test_attached_policies(self):
        """Ensure attached policies are identified by policy and role."""
        account = self.directory.account(DEFAULT_ACCOUNT)
        account.add_role("deployer").add_role("auditor")
        account.attach("Role", "deployer", ["Admin"])
        account.attach("Role", "auditor", ["ReadOnly", "SecurityAudit"])

        pages = self.sync("RolePolicy", ["id", "PolicyArn", "AccountId"], "id")
        objects = [member for page in pages for member in page.objects]

        self.assertEqual(
            [member["id"] for member in objects],
            [
                "arn:aws:iam::000000000000:policy/Admin-deployer",
                "arn:aws:iam::000000000000:policy/ReadOnly-auditor",
                "arn:aws:iam::000000000000:policy/SecurityAudit-auditor",
            ],
        )
        self.assertEqual(
            {member["AccountId"] for member in objects}, {DEFAULT_ACCOUNT}
        )

        # Member list calls are never filtered by path.
        self.assertNotIn(
            "PathPrefix",
            self.directory.calls_to("list_attached_role_policies")[0],
        )

    def test_resource_accounts(self):
        """Ensure each resource account is paged to completion, in order."""
        self.directory.account("111111111111").add_user("a1").add_user(
            "a2"
        ).add_user("a3")
        self.directory.account("222222222222").add_user("b1")

        pages = self.sync(
            "User",
            ["UserName", "AccountId"],
            "UserName",
            resourceAccountRoles=ROLES,
        )

        self.assertEqual(
            [
                [(user["UserName"], user["AccountId"]) for user in page.objects]
                for page in pages
            ],
            [
                [("a1", "111111111111"), ("a2", "111111111111")],
                [("a3", "111111111111")],
                [("b1", "222222222222")],
            ],
        )

        # The account cursor is nested within the composite cursor.
        account = decode_account_cursor(unmarshal_cursor(pages[0].next_cursor).cursor)
        self.assertEqual(account.offset, 0)
        self.assertEqual(account.next_marker, "marker-2")

        account = decode_account_cursor(unmarshal_cursor(pages[1].next_cursor).cursor)
        self.assertEqual(account.offset, 1)
        self.assertIsNone(account.next_marker)

        # Each role is assumed with a session name unique to the role.
        self.assertEqual(
            sorted(
                call["RoleSessionName"]
                for call in self.directory.calls_to("assume_role")
            ),
            ["TrellisSession-0", "TrellisSession-0", "TrellisSession-1"],
        )

    def test_resource_accounts_empty_account(self):
        """Ensure an account with no entities does not end the sync."""
        self.directory.account("111111111111")
        self.directory.account("222222222222").add_user("b1")

        pages = self.sync("User", ["UserName"], "UserName", resourceAccountRoles=ROLES)

        self.assertEqual([len(page.objects) for page in pages], [0, 1])

    def test_resource_accounts_group_members(self):
        """Ensure members are read from the account of their group."""
        first = self.directory.account("111111111111")
        for name in ("u1", "u2", "u3"):
            first.add_user(name)
        first.add_group("Group1", ["u1", "u2", "u3"])

        second = self.directory.account("222222222222")
        second.add_user("u4").add_group("Group2", ["u4"])

        pages = self.sync(
            "GroupMember",
            ["id", "AccountId"],
            "id",
            resourceAccountRoles=ROLES,
        )
        objects = [member for page in pages for member in page.objects]

        self.assertEqual(
            [(member["id"], member["AccountId"]) for member in objects],
            [
                ("AIDAU1-Group1", "111111111111"),
                ("AIDAU2-Group1", "111111111111"),
                ("AIDAU3-Group1", "111111111111"),
                ("AIDAU4-Group2", "222222222222"),
            ],
        )

        # The position within Group1 is pinned to the account of Group1.
        cursor = unmarshal_cursor(pages[0].next_cursor)
        self.assertEqual(decode_account_cursor(cursor.cursor).offset, 0)
        self.assertEqual(decode_account_cursor(cursor.collection_cursor).offset, 1)

    def test_assume_role_denied(self):
        """Ensure a role which cannot be assumed fails the page."""
        self.directory.denied.append(ROLES[0])

        response = self.get_page(
            self.request("User", ["UserName"], "UserName", resourceAccountRoles=ROLES)
        )

        self.assertEqual(response.error.code, ERROR_CODE_INTERNAL)
        self.assertIn("Failed to assume role", response.error.message)

    def test_validation(self):
        """Ensure invalid requests are rejected before any request to AWS."""
        # Missing credentials.
        request = self.request("User", ["UserName"], "UserName")
        request.auth = None
        response = self.get_page(request)
        self.assertEqual(response.error.code, ERROR_CODE_INVALID_DATASOURCE_CONFIG)
        self.assertIn("AWS authorization credentials", response.error.message)

        # Unknown entity.
        response = self.get_page(self.request("Bucket", ["Name"], "Name"))
        self.assertEqual(response.error.code, ERROR_CODE_INVALID_ENTITY_CONFIG)

        # No unique ID requested.
        response = self.get_page(self.request("User", ["UserName"], "Other"))
        self.assertEqual(response.error.code, ERROR_CODE_INVALID_ENTITY_CONFIG)

        # Page size too large.
        response = self.get_page(
            self.request("User", ["UserName"], "UserName", page_size=1001)
        )
        self.assertEqual(response.error.code, ERROR_CODE_INVALID_PAGE_REQUEST_CONFIG)

        # Too many resource accounts.
        response = self.get_page(
            self.request(
                "User",
                ["UserName"],
                "UserName",
                resourceAccountRoles=ROLES * 51,
            )
        )
        self.assertEqual(response.error.code, ERROR_CODE_INVALID_PAGE_REQUEST_CONFIG)

        # Missing region.
        request = self.request("User", ["UserName"], "UserName")
        request.config = {}
        response = self.get_page(request)
        self.assertEqual(response.error.code, ERROR_CODE_INVALID_DATASOURCE_CONFIG)
        self.assertIn("region", response.error.message)

        self.assertEqual(self.directory.calls, [])

    def test_malformed_cursor(self):
        """Ensure a malformed cursor is reported, rather than restarting the sync."""
        response = self.get_page(
            self.request("User", ["UserName"], "UserName", cursor="%%%")
        )

        self.assertIsNone(response.success)
        self.assertEqual(response.error.code, ERROR_CODE_INVALID_PAGE_REQUEST_CONFIG)
        self.assertIn("Failed to decode base64 cursor", response.error.message)

    def test_member_cursor_without_collection(self):
        """Ensure member cursors must identify the collection being paged."""
        cursor = base64.b64encode(b'{"cursor":"marker-2"}').decode()
        response = self.get_page(self.request("GroupMember", ["id"], "id", cursor))

        self.assertEqual(response.error.code, ERROR_CODE_INVALID_PAGE_REQUEST_CONFIG)
        self.assertIn("CollectionID", response.error.message)


class AWSClientTestCase(unittest.TestCase):
    """Implements tests for the AWS client helpers."""

    def test_render(self):
        """Ensure date-times are rendered as RFC 3339 strings."""
        self.assertEqual(
            render({"CreateDate": CREATED, "Tags": [{"Key": "a"}]}),
            {"CreateDate": "2024-01-02T03:04:05+00:00", "Tags": [{"Key": "a"}]},
        )

    def test_invoke_client_error(self):
        """Ensure AWS errors are wrapped, keeping the AWS status code."""

        class Failing:
            def get_user(self, **kwargs):
                raise client_error("NoSuchEntity", "GetUser", 404)

        with self.assertRaises(InternalException) as context:
            invoke(Failing(), "get_user", "Unable to fetch AWS entity: User", 10)

        self.assertEqual(context.exception.status_code, 404)
        self.assertIn("Unable to fetch AWS entity: User", context.exception.message)
        self.assertIn("NoSuchEntity", context.exception.message)

    def test_account_id_from_arn(self):
        """Ensure account IDs are parsed from ARNs."""
        self.assertEqual(
            iam.account_id_from_arn("arn:aws:iam::123456789012:user/division/alice"),
            "123456789012",
        )

        with self.assertRaises(ValueError):
            iam.account_id_from_arn("not-an-arn")


class AWSAdapterMotoTestCase(unittest.TestCase):
    """Implements tests for the AWS IAM adapter against moto, using real clients."""

    @mock_aws
    def test_users(self):
        """Ensure users are read and converted using the boto IAM client."""
        client = boto3.client("iam", region_name="us-east-1")
        for name in ("alice", "bob"):
            client.create_user(UserName=name, Path="/engineering/")

        response = Adapter(settings=mocks.settings()).get_page(
            mocks.page_request(
                "User",
                ["UserName", "Arn", "AccountId"],
                unique="UserName",
                config={
                    "region": "us-east-1",
                    "entityConfig": {"User": {"pathPrefix": "/engineering/"}},
                },
                username="AKIAEXAMPLE",
                password="secret",
            )
        )

        self.assertIsNone(response.error, response.error)
        self.assertEqual(response.success.next_cursor, "")
        self.assertEqual(
            sorted(user["UserName"] for user in response.success.objects),
            ["alice", "bob"],
        )
        for user in response.success.objects:
            self.assertEqual(user["AccountId"], user["Arn"].split(":")[4])
