from typing import Optional
import uuid

from pydantic import BaseModel


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class TokenPayload(BaseModel):
    sub: Optional[str] = None
    email: Optional[str] = None
    exp: Optional[int] = None
    iat: Optional[int] = None

    @property
    def user_id(self) -> uuid.UUID:
        """The subject as a UUID; raises ``ValueError`` when it is missing or malformed."""
        if not self.sub:
            raise ValueError("Token has no subject")
        return uuid.UUID(self.sub)
