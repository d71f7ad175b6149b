# Pydantic schemas

from pydantic import BaseModel, Field
from typing import Any


class ChatRequest(BaseModel):
    """Chat intake body. Identity fields are checked by the route so that
    missing values map to a 400 rather than a schema error."""

    message: str = ""
    # Bounded by the String(255) columns they are stored in
    anonymous_user_id: str | None = Field(default=None, max_length=255)
    session_id: str | None = Field(default=None, max_length=255)
    partner_code: Any = None

    def missing_identity_fields(self) -> list[str]:
        missing = []
        for name in ("anonymous_user_id", "session_id", "partner_code"):
            value = getattr(self, name)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(name)
        return missing


class ChatResponse(BaseModel):
    reply: str
