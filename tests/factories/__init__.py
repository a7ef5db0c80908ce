"""Test factories for generating test data.

Re-exports all factories for convenient imports:
    from tests.factories import TheaterFactory, TheaterUserFactory, ...
"""

from tests.factories.base import BaseFactory, generate_uuid, utc_now
from tests.factories.theater import TheaterFactory
from tests.factories.user import (
    DEFAULT_TEST_PASSWORD,
    DEFAULT_TEST_PIN,
    AdminFactory,
    RoleFactory,
    TheaterUserFactory,
)

__all__ = [
    # Base
    "BaseFactory",
    "generate_uuid",
    "utc_now",
    # Theater
    "TheaterFactory",
    # Accounts
    "AdminFactory",
    "RoleFactory",
    "TheaterUserFactory",
    "DEFAULT_TEST_PASSWORD",
    "DEFAULT_TEST_PIN",
]
