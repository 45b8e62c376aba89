"""
员工身份认证

身份提供方登录后签发 HS256 令牌（sub 为 User.id），
这里只负责校验令牌并加载用户
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from .config import Settings, get_settings
from .database import get_db
from .exceptions import ForbiddenException, UnauthorizedException
from hireline.crud import user_crud

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(
    user_id: str,
    settings: Settings,
    expires_in: timedelta = timedelta(hours=8),
) -> str:
    """签发员工访问令牌"""
    now = datetime.now(timezone.utc)
    claims = {"sub": user_id, "iat": now, "exp": now + expires_in}
    return jwt.encode(claims, settings.session_secret, algorithm=settings.session_algorithm)


def decode_access_token(token: str, settings: Settings) -> str:
    """校验令牌并返回用户ID"""
    try:
        claims = jwt.decode(
            token,
            settings.session_secret,
            algorithms=[settings.session_algorithm],
            options={"require": ["sub", "exp"]},
        )
    except jwt.InvalidTokenError:
        raise UnauthorizedException("Invalid or expired token") from None
    
    user_id = claims.get("sub")
    if not isinstance(user_id, str) or not user_id:
        raise UnauthorizedException("Invalid or expired token")
    return user_id


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """当前登录用户"""
    if credentials is None or not credentials.credentials:
        raise UnauthorizedException("Authentication required")
    
    user_id = decode_access_token(credentials.credentials, settings)
    user = await user_crud.get(db, user_id)
    if user is None:
        raise UnauthorizedException("User not found")
    return user


async def require_access(user=Depends(get_current_user)):
    """可访问申请的员工（招聘经理或管理员）"""
    if not (user.has_access or user.is_admin):
        raise ForbiddenException("You do not have access to applications")
    return user


async def require_admin(user=Depends(get_current_user)):
    """管理员"""
    if not user.is_admin:
        raise ForbiddenException("Admin access required")
    return user
