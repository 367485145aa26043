from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional
import logging

from microgrid.core.security import ADMIN_ROLE, TokenData, verify_token
from microgrid.services.market_service import MarketService

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


class AuthUser:
    """Caller identity resolved from the bearer token"""
    def __init__(self, user_id: str, email: Optional[str], role: Optional[str], member_id: Optional[str]):
        self.id = user_id
        self.email = email
        self.role = role
        self.member_id = member_id

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


async def get_current_user_token_data(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> TokenData:
    """Extract and verify the JWT bearer token"""
    token_data = verify_token(credentials.credentials) if credentials else None

    if token_data is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return token_data


async def get_current_active_user(
    token_data: TokenData = Depends(get_current_user_token_data)
) -> AuthUser:
    """Get current user as AuthUser object"""
    return AuthUser(
        user_id=token_data.user_id,
        email=token_data.email,
        role=token_data.role,
        member_id=token_data.member_id,
    )


async def get_current_admin_user(
    current_user: AuthUser = Depends(get_current_active_user)
) -> AuthUser:
    """Get current admin user"""
    if not current_user.is_admin:
        logger.warning(f"Admin-only operation refused for user {current_user.id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not enough permissions"
        )
    return current_user


def get_market_service(request: Request) -> MarketService:
    """Market service built at startup and kept on the application state"""
    return request.app.state.market_service
