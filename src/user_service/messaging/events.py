from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

import orjson

USER_CREATED = "user.created"


def _iso(value: datetime | str | None) -> str | None:
    if value is None or isinstance(value, str):
        return value
    return value.isoformat()


@dataclass(frozen=True, slots=True)
class UserEvent:
    event: str
    user_id: int
    email: str
    name: str
    created_at: str | None = None
    updated_at: str | None = None

    @classmethod
    def created(cls, user: dict[str, Any]) -> UserEvent:
        return cls(
            event=USER_CREATED,
            user_id=int(user["id"]),
            email=user["email"],
            name=user["name"],
            created_at=_iso(user.get("created_at")),
            updated_at=_iso(user.get("updated_at")),
        )

    def describe(self) -> str:
        return f"New user created: {self.name} ({self.email})"

    def to_bytes(self) -> bytes:
        return orjson.dumps(
            {
                "event": self.event,
                "user_id": self.user_id,
                "email": self.email,
                "name": self.name,
                "created_at": self.created_at,
                "updated_at": self.updated_at,
            }
        )

    @classmethod
    def from_bytes(cls, raw: bytes) -> UserEvent:
        body = orjson.loads(raw)
        return cls(
            event=str(body["event"]),
            user_id=int(body["user_id"]),
            email=str(body["email"]),
            name=str(body["name"]),
            created_at=body.get("created_at"),
            updated_at=body.get("updated_at"),
        )
