# classhub/security/jwt_utils.py
import os
import jwt
from fastapi import HTTPException, status

from classhub.models.session import SessionState

JWT_SECRET = os.getenv("JWT_SECRET", "change-me")
JWT_ALG = os.getenv("JWT_ALG", "HS256")


def decode_token(token: str) -> dict:
    """
    Decode and validate a JWT (WebSocket sign-in and REST).
    Raises 401 if it is invalid or has no subject.
    """
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])
    except jwt.PyJWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )

    if "sub" not in payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token without subject",
        )

    return payload


def session_from_claims(payload: dict) -> SessionState:
    # the auth provider issues either "role": "admin" or "roles": [...]
    roles = payload.get("roles") or []
    if isinstance(roles, str):
        roles = [roles]
    if payload.get("role"):
        roles = [*roles, payload["role"]]

    return SessionState(
        user_id=str(payload["sub"]),
        email=payload.get("email"),
        roles=tuple(roles),
    )


def get_current_user(authorization_header: str) -> SessionState:
    """
    Takes the header: Authorization: Bearer <token>
    Validates it and returns the session it describes.
    Raises 401 if it is missing or invalid.
    """
    if not authorization_header:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Authorization header",
        )

    if not authorization_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid Authorization header format",
        )

    token = authorization_header.removeprefix("Bearer ").strip()
    return session_from_claims(decode_token(token))
