# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""Provides pagination across multiple accounts.

Some datasources allow access to more than one account, each of which must be paged
separately using the credentials of that account. Accounts are walked in the order
they are configured, and each account is paged to completion before moving onto the
next.

The position within the accounts is recorded in an account cursor, which is itself
base64 encoded JSON. This is stored as the value of a field of a composite cursor.
"""

from typing import Optional

from pydantic import BaseModel, Extra, Field, StrictStr, ValidationError

from trellis.exceptions import InvalidPageRequestException
from trellis.pagination import decode_base64_json, encode_base64_json


class AccountCursor(BaseModel):
    """Defines the account being paged, and the vendor marker within that account."""

    offset: int = Field(0, alias="Offset", ge=0)
    next_marker: Optional[StrictStr] = Field(None, alias="NextMarker")

    class Config:
        allow_population_by_field_name = True
        extra = Extra.ignore


def decode_account_cursor(value: str) -> AccountCursor:
    """Decodes an account cursor.

    :param value: The base64 encoded JSON account cursor.

    :raises InvalidPageRequestException: The account cursor was malformed.

    :return: The decoded account cursor.
    """
    try:
        return AccountCursor.parse_obj(decode_base64_json(value))
    except (InvalidPageRequestException, ValidationError) as err:
        raise InvalidPageRequestException(f"Error decoding account cursor: {err}")


def encode_account_cursor(cursor: AccountCursor) -> str:
    """Encodes an account cursor.

    :param cursor: The account cursor to encode.

    :return: The base64 encoded JSON account cursor.
    """
    return encode_base64_json(cursor.dict(by_alias=True))


def account_cursor_from(value: Optional[str], accounts: int) -> AccountCursor:
    """Returns the account cursor from a cursor field, defaulting to the first account.

    :param value: The cursor field value, which may be unset.
    :param accounts: The number of configured accounts.

    :raises InvalidPageRequestException: The account cursor was malformed, or refers
        to an account which is not configured.

    :return: The account cursor.
    """
    if value is None:
        return AccountCursor()

    cursor = decode_account_cursor(value)

    if cursor.offset >= accounts:
        raise InvalidPageRequestException(
            f"Account cursor offset ({cursor.offset}) is out of range for the number "
            f"of configured accounts ({accounts})."
        )

    return cursor


def advance_account_cursor(
    offset: int,
    next_marker: Optional[str],
    accounts: int,
) -> Optional[AccountCursor]:
    """Determines the account cursor following a page from an account.

    :param offset: The offset of the account which the page was retrieved from.
    :param next_marker: The vendor marker for the next page within the account.
    :param accounts: The number of configured accounts.

    :return: The next account cursor, or None if all accounts have been paged.
    """
    if next_marker is not None:
        return AccountCursor(offset=offset, next_marker=next_marker)

    if offset + 1 < accounts:
        return AccountCursor(offset=offset + 1, next_marker=None)

    return None
