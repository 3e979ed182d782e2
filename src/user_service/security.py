"""
user_service.security

Password hashing.

Responsibilities:
- Hash credentials with bcrypt (salted, adaptive cost) before they reach the store.
"""

from __future__ import annotations

import asyncio

from passlib.context import CryptContext

# bcrypt's default work factor; fixed here and never taken from callers or config.
BCRYPT_ROUNDS = 12

_pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=BCRYPT_ROUNDS,
)


def hash_password(password: str) -> str:
    return _pwd_context.hash(password)


async def hash_password_async(password: str) -> str:
    # bcrypt is CPU-bound (~250ms at cost 12); keep it off the event loop.
    return await asyncio.to_thread(hash_password, password)
