"""
Person identity across accounts.

A contributor account and a reviewer account may belong to the same person.
Ownership checks compare the canonical person_id, never emails.
"""

import uuid
from typing import Union

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from voicereview.models.tables import User
from voicereview.review.errors import UnknownAccount

AccountId = Union[str, uuid.UUID]


def as_uuid(value: AccountId) -> uuid.UUID:
    """Coerce a str or UUID identifier to UUID. Raises ValueError if malformed."""
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


def accounts_of(person_id: uuid.UUID) -> Select:
    """Subquery selecting every account id held by one person."""
    return select(User.user_id).where(User.person_id == person_id)


async def get_account(session: AsyncSession, user_id: AccountId) -> User:
    """Load an account fresh from the store or raise UnknownAccount."""
    try:
        key = as_uuid(user_id)
    except ValueError:
        raise UnknownAccount(f"malformed account id: {user_id!r}")

    user = await session.get(User, key, populate_existing=True)
    if user is None:
        raise UnknownAccount(f"account {key} does not exist")
    return user
