"""FastAPI dependencies resolving the caller of a request."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from src.api.middleware.auth import AuthError, AuthErrorCode, decode_jwt
from src.schemas.auth import UserContext
from src.services.authorization import Actor
from src.services.order_service import OrderService


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    authorization: Annotated[str, Header(description="Bearer token")] = "",
) -> UserContext:
    """Authenticate the request from its ``Authorization: Bearer`` header.

    Args:
        authorization: The Authorization header value.

    Returns:
        UserContext: User id, email and application role from the token.

    Raises:
        HTTPException: 401 if the header is missing or malformed, or the
            token is expired or invalid.
    """
    if not authorization:
        raise _unauthorized("Authorization header required")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token or " " in token:
        raise _unauthorized("Invalid authorization header format. Expected: Bearer <token>")

    try:
        return decode_jwt(token).to_user_context()
    except AuthError as e:
        detail = "Token has expired" if e.code == AuthErrorCode.TOKEN_EXPIRED else e.message
        raise _unauthorized(detail) from e


CurrentUser = Annotated[UserContext, Depends(get_current_user)]


async def get_actor(user: CurrentUser) -> Actor:
    """Resolve the authenticated user into an order-service actor.

    Vendors get their vendor profile id attached; a vendor account without a
    profile gets ``vendor_id=None`` and is rejected by the policy.
    """
    vendor_id = None
    if user.role == "vendor":
        vendor_id = await OrderService().get_vendor_id_for_user(user.user_id)
    return Actor(user_id=user.user_id, role=user.role, vendor_id=vendor_id)


CurrentActor = Annotated[Actor, Depends(get_actor)]
