"""Login identifier resolution across account tables.

Strategies run in a fixed order. Each one decides whether it applies to
the identifier, fetches candidates, and the resolver returns the first
candidate whose password verifies.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from src.theaterpos.core.security import DUMMY_PASSWORD_HASH, Principal, verify_password
from src.theaterpos.models import Admin, TheaterUser
from src.theaterpos.repositories import AdminRepository, TheaterUserRepository


@dataclass
class AuthenticatedPrincipal:
    """A password-verified account, before any token is minted."""

    principal: Principal
    is_active: bool
    requires_pin: bool
    account: Admin | TheaterUser


class ResolverStrategy(Protocol):
    name: str

    def applies(self, identifier: str) -> bool: ...

    async def candidates(self, identifier: str) -> Sequence[AuthenticatedPrincipal]: ...

    def password_hash(self, candidate: AuthenticatedPrincipal) -> str: ...


def admin_principal(admin: Admin) -> Principal:
    return Principal(
        user_id=str(admin.id),
        username=admin.email,
        role=admin.role,
        user_type=admin.role,
        tenant_id=None,
    )


def theater_user_principal(user: TheaterUser) -> Principal:
    return Principal(
        user_id=str(user.id),
        username=user.username,
        role=user.user_type,
        user_type=user.user_type,
        tenant_id=str(user.tenant_id),
        role_id=str(user.role_id) if user.role_id else None,
    )


class AdminByEmail:
    """Global administrators, addressed by an email-shaped identifier."""

    name = "admin"

    def __init__(self, repo: AdminRepository):
        self.repo = repo

    def applies(self, identifier: str) -> bool:
        return "@" in identifier

    async def candidates(self, identifier: str) -> Sequence[AuthenticatedPrincipal]:
        admin = await self.repo.get_by_email(identifier)
        if admin is None:
            return []
        return [
            AuthenticatedPrincipal(
                principal=admin_principal(admin),
                is_active=admin.is_active,
                requires_pin=False,
                account=admin,
            )
        ]

    def password_hash(self, candidate: AuthenticatedPrincipal) -> str:
        return candidate.account.hashed_password


class TheaterUserByUsername:
    """Theater staff. A username may exist in several theaters."""

    name = "theater_user"

    def __init__(self, repo: TheaterUserRepository):
        self.repo = repo

    def applies(self, identifier: str) -> bool:
        return True

    async def candidates(self, identifier: str) -> Sequence[AuthenticatedPrincipal]:
        users = await self.repo.list_by_username(identifier)
        return [
            AuthenticatedPrincipal(
                principal=theater_user_principal(user),
                is_active=user.is_active,
                requires_pin=True,
                account=user,
            )
            for user in users
        ]

    def password_hash(self, candidate: AuthenticatedPrincipal) -> str:
        return candidate.account.hashed_password


class UserResolver:
    def __init__(self, strategies: Sequence[ResolverStrategy]):
        self.strategies = list(strategies)

    async def resolve(self, identifier: str, password: str) -> AuthenticatedPrincipal | None:
        """Return the first account matching identifier and password, else None.

        A password verification always runs, against a dummy hash if no
        candidate exists, so unknown identifiers are not cheaper to probe.
        """
        identifier = identifier.strip()
        verified_any = False
        for strategy in self.strategies:
            if not strategy.applies(identifier):
                continue
            for candidate in await strategy.candidates(identifier):
                verified_any = True
                if verify_password(password, strategy.password_hash(candidate)):
                    return candidate
        if not verified_any:
            verify_password(password, DUMMY_PASSWORD_HASH)
        return None


def default_resolver(admin_repo: AdminRepository, user_repo: TheaterUserRepository) -> UserResolver:
    return UserResolver([AdminByEmail(admin_repo), TheaterUserByUsername(user_repo)])
