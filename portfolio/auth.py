from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from portfolio.config import settings

security_scheme = HTTPBearer(auto_error=False)


def credentials_match(email: str, password: str) -> bool:
    return bool(
        settings.admin_email
        and email.lower() == str(settings.admin_email).lower()
        and password == settings.admin_password
    )


def create_admin_token(subject: str) -> str:
    expires_delta = timedelta(minutes=settings.jwt_access_token_expires_minutes)
    expire = datetime.now(timezone.utc) + expires_delta
    payload = {"sub": subject, "exp": expire}
    return jwt.encode(
        payload,
        key=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def decode_admin_token(token: str) -> dict:
    try:
        payload = jwt.decode(
            token,
            key=settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        ) from None
    if "sub" not in payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )
    return payload


def optional_subject(request: Request) -> Optional[str]:
    """Subject of a valid bearer token on the request, without failing."""
    header = request.headers.get("authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    try:
        payload = jwt.decode(
            token,
            key=settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None
    return payload.get("sub")


async def require_admin(
    credentials: HTTPAuthorizationCredentials | None = Depends(security_scheme),
) -> str:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication credentials were not provided",
        )
    payload = decode_admin_token(credentials.credentials)
    return payload["sub"]
