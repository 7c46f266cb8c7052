from datetime import datetime, timezone
from typing import List

from fastapi import Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from edufin.config import settings
from edufin.database import get_db
from edufin.exceptions import ForbiddenError
from edufin.models.users import User

# Tokens are issued by the identity provider; this URL is only advertised in the docs
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token")


async def get_current_user(
    request: Request,
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    Get the current authenticated user from the provided JWT token.

    The token's ``sub`` claim is the id of a user mirrored in the local
    ``users`` table.

    Args:
        request: The incoming request, tagged with the user id for logging
        token: The JWT token
        db: Database session

    Returns:
        The authenticated user

    Raises:
        HTTPException: If token is invalid, expired or the user is unknown
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM]
        )

        user_id = payload.get("sub")
        if user_id is None:
            raise credentials_exception

        token_exp = payload.get("exp")
        if token_exp is None:
            raise credentials_exception

        if datetime.fromtimestamp(token_exp, tz=timezone.utc) < datetime.now(timezone.utc):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token has expired",
                headers={"WWW-Authenticate": "Bearer"},
            )

        user_id = int(user_id)
    except (JWTError, ValueError):
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalars().first()

    if user is None:
        raise credentials_exception

    request.state.user_id = user.id
    return user


class RoleChecker:
    """
    Dependency for checking if a user has the required role(s).
    """
    def __init__(self, allowed_roles: List[str]):
        self.allowed_roles = allowed_roles

    async def __call__(self, user: User = Depends(get_current_user)) -> User:
        if user.role not in self.allowed_roles:
            raise ForbiddenError("This action requires one of the roles: " + ", ".join(self.allowed_roles))
        return user
