"""Access-token claims and the caller identity derived from them."""

from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["user", "admin", "vendor"]

APP_ROLES: tuple[str, ...] = ("user", "admin", "vendor")


class UserContext(BaseModel):
    """Caller of the current request, as established by the bearer token."""

    model_config = ConfigDict(from_attributes=True)

    user_id: UUID = Field(description="User ID (token 'sub' claim)")
    email: str | None = Field(default=None, description="Email claim, if present")
    role: Role = Field(default="user", description="Application role: user, admin or vendor")


class TokenPayload(BaseModel):
    """Claims of a Supabase access token that this service reads."""

    model_config = ConfigDict(from_attributes=True)

    sub: str = Field(description="User UUID")
    email: str | None = Field(default=None)
    role: str | None = Field(default=None, description="Postgres role claim set by Supabase")
    app_metadata: dict[str, Any] = Field(default_factory=dict, description="Server-managed user metadata")
    exp: int = Field(description="Expiry (Unix seconds)")
    iat: int = Field(description="Issued at (Unix seconds)")
    aud: str | list[str] | None = Field(default=None)
    iss: str | None = Field(default=None)

    @property
    def app_role(self) -> str:
        """Resolve the application role.

        ``app_metadata.role`` wins; the top-level claim is only honoured when
        it names an application role (Supabase puts "authenticated" there).
        """
        for candidate in (self.app_metadata.get("role"), self.role):
            if candidate in APP_ROLES:
                return candidate
        return "user"

    def to_user_context(self) -> UserContext:
        return UserContext(user_id=UUID(self.sub), email=self.email, role=self.app_role)


class AuthenticatedResponse(BaseModel):
    """Body of ``/health/auth``: who the token says the caller is."""

    model_config = ConfigDict(from_attributes=True)

    authenticated: bool = Field(default=True)
    user_id: str = Field(description="Authenticated user ID")
    email: str | None = Field(default=None)
    role: str = Field(description="Resolved application role")
