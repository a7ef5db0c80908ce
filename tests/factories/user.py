"""Account factories: global admins, theater staff and roles."""

from polyfactory import Use

from src.theaterpos.core.security import hash_password
from src.theaterpos.models.enums import AdminRole, TheaterUserType
from src.theaterpos.models.public import Admin
from src.theaterpos.models.tenant import Role, TheaterUser
from tests.factories.base import BaseFactory, generate_uuid, utc_now

# Default test credentials - stored for convenience in tests
DEFAULT_TEST_PASSWORD = "testpassword123"
DEFAULT_TEST_PIN = "1234"

_TEST_PASSWORD_HASH = hash_password(DEFAULT_TEST_PASSWORD)


class AdminFactory(BaseFactory):
    """Factory for generating global Admin test data."""

    __model__ = Admin

    id = Use(generate_uuid)
    email = Use(lambda: f"admin_{generate_uuid().hex[-8:]}@example.com")
    hashed_password = _TEST_PASSWORD_HASH
    full_name = "Test Admin"
    role = AdminRole.ADMIN.value
    is_active = True
    last_login = None
    created_at = Use(utc_now)
    updated_at = Use(utc_now)

    @classmethod
    def super_admin(cls, **kwargs):
        """Create a super admin."""
        return cls.build(role=AdminRole.SUPER_ADMIN.value, **kwargs)


class RoleFactory(BaseFactory):
    """Factory for generating theater Role test data."""

    __model__ = Role

    id = Use(generate_uuid)
    tenant_id = None  # Required FK - must be set explicitly
    name = "Cashier"
    is_active = True
    permissions = Use(lambda: [{"page": "orders", "hasAccess": True}])
    created_at = Use(utc_now)


class TheaterUserFactory(BaseFactory):
    """Factory for generating TheaterUser test data."""

    __model__ = TheaterUser

    id = Use(generate_uuid)
    tenant_id = None  # Required FK - must be set explicitly
    username = Use(lambda: f"staff_{generate_uuid().hex[-8:]}")
    hashed_password = _TEST_PASSWORD_HASH
    pin = DEFAULT_TEST_PIN
    full_name = "Test Staff"
    email = None
    user_type = TheaterUserType.THEATER_USER.value
    role_id = None
    is_active = True
    last_login = None
    created_at = Use(utc_now)
    updated_at = Use(utc_now)

    @classmethod
    def theater_admin(cls, **kwargs):
        """Create a theater admin."""
        return cls.build(user_type=TheaterUserType.THEATER_ADMIN.value, **kwargs)

    @classmethod
    def inactive(cls, **kwargs):
        """Create an inactive staff account."""
        return cls.build(is_active=False, **kwargs)
