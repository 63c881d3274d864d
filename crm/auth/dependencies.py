from dataclasses import dataclass
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from crm.auth.security import TokenError, decode_access_token
from crm.db.deps import get_session
from crm.db.enums import UserRoleEnum
from crm.db.repositories.users import UsersRepository


bearer_scheme = HTTPBearer(auto_error=False)
logger = logging.getLogger("auth.deps")


@dataclass
class AuthContext:
    user_id: str
    role: UserRoleEnum
    email: str
    name: str

    @property
    def is_admin(self) -> bool:
        return self.role == UserRoleEnum.admin


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    session: Session = Depends(get_session),
) -> AuthContext:
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No token, authorization denied")

    try:
        claims = decode_access_token(credentials.credentials)
    except TokenError as exc:
        logger.warning("Token verification failed", exc_info=exc)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token is not valid") from exc

    user = UsersRepository(session).get(claims["sub"])
    if not user or not user.is_active:
        logger.info("Token subject missing or inactive", extra={"sub": claims["sub"]})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token is not valid")

    logger.debug("AuthContext built", extra={"sub": user.id, "role": user.role.value})
    return AuthContext(user_id=user.id, role=user.role, email=user.email, name=user.name)


def require_admin(auth: AuthContext = Depends(get_current_user)) -> AuthContext:
    if not auth.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"User role {auth.role.value} is not authorized to access this route",
        )
    return auth
