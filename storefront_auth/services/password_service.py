"""Password strength policy and Argon2id hashing."""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import List

from argon2 import PasswordHasher as Argon2Hasher, Type
from argon2.exceptions import Argon2Error, InvalidHashError

from storefront_auth.core.config import Settings

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 128

SPECIAL_CHARACTERS = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]")

COMMON_PASSWORDS = frozenset({
    "password", "123456", "password123", "admin123", "qwerty",
    "12345678", "111111", "abc123", "password1", "123123",
})


@dataclass
class PasswordCheck:
    valid: bool
    violations: List[str] = field(default_factory=list)


class PasswordPolicy:
    """Structural strength rules. No breach-database lookup."""

    @staticmethod
    def validate_strength(password: str) -> PasswordCheck:
        violations: List[str] = []

        if len(password) < MIN_PASSWORD_LENGTH:
            violations.append(f"must be at least {MIN_PASSWORD_LENGTH} characters long")
        if len(password) > MAX_PASSWORD_LENGTH:
            violations.append(f"must not exceed {MAX_PASSWORD_LENGTH} characters")
        if not re.search(r"[a-z]", password):
            violations.append("must contain a lowercase letter")
        if not re.search(r"[A-Z]", password):
            violations.append("must contain an uppercase letter")
        if not re.search(r"[0-9]", password):
            violations.append("must contain a number")
        if not SPECIAL_CHARACTERS.search(password):
            violations.append("must contain a special character")
        if password.lower() in COMMON_PASSWORDS:
            violations.append("is too common")

        return PasswordCheck(valid=not violations, violations=violations)


class PasswordHasher:
    """Argon2id hashing with tuned cost parameters.

    Hashing is CPU and memory bound, so the ``*_async`` variants push the
    work to a thread and keep the event loop free for other requests.
    """

    def __init__(self, settings: Settings):
        self._hasher = Argon2Hasher(
            time_cost=settings.argon2_time_cost,
            memory_cost=settings.argon2_memory_cost,
            parallelism=settings.argon2_parallelism,
            type=Type.ID,
        )
        # Verified against when the email is unknown so both paths cost the same
        self._dummy_hash = self._hasher.hash("this_is_a_fake_user_that_never_exists_2025")

    def hash(self, password: str) -> str:
        return self._hasher.hash(password)

    def verify(self, password: str, password_hash: str) -> bool:
        """Return True on match. Any verification error counts as a mismatch."""
        try:
            return self._hasher.verify(password_hash, password)
        except (Argon2Error, InvalidHashError, TypeError, ValueError):
            return False

    async def hash_async(self, password: str) -> str:
        return await asyncio.to_thread(self.hash, password)

    async def verify_async(self, password: str, password_hash: str) -> bool:
        return await asyncio.to_thread(self.verify, password, password_hash)

    async def verify_dummy_async(self, password: str) -> bool:
        await self.verify_async(password, self._dummy_hash)
        return False
