"""
管道自动化引擎 — 认证

JWT Bearer 认证，token 的 sub 即管道所属用户 ID。
用户注册与登录由账户服务负责，这里只签发（测试 / 内部调用）和校验 token。
"""

from datetime import timedelta
from typing import Annotated, Any

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from automation.common.config import AuthConfig
from automation.common.logging import get_logger
from automation.common.utils import utc_now

from .dependencies import get_auth_config

logger = get_logger(__name__)

ACCESS_TOKEN_EXPIRE_MINUTES = 60


def create_access_token(
    owner_id: str,
    config: AuthConfig | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """
    创建访问 Token

    Args:
        owner_id: 用户 ID
        config: 认证配置
        expires_delta: 有效期

    Returns:
        JWT Token
    """
    config = config or get_auth_config()
    if expires_delta is None:
        expires_delta = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)

    now = utc_now()
    payload = {
        "sub": owner_id,
        "type": "access",
        "exp": now + expires_delta,
        "iat": now,
    }
    return jwt.encode(payload, config.jwt_secret, algorithm=config.jwt_algorithm)


def verify_token(token: str, config: AuthConfig | None = None) -> dict[str, Any]:
    """
    验证 Token

    Raises:
        HTTPException: Token 无效或过期
    """
    config = config or get_auth_config()
    try:
        payload = jwt.decode(token, config.jwt_secret, algorithms=[config.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "TOKEN_EXPIRED", "message": "Token 已过期"},
        )
    except jwt.InvalidTokenError as e:
        logger.warning(f"Token 验证失败: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "INVALID_TOKEN", "message": "无效的 Token"},
        )

    if payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "INVALID_TOKEN_TYPE", "message": "Token 类型错误"},
        )
    return payload


security = HTTPBearer(auto_error=False)


async def get_current_owner(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)] = None,
) -> str:
    """
    从 Authorization Header 获取当前用户 ID

    Raises:
        HTTPException: 认证失败
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "MISSING_TOKEN", "message": "缺少认证 Token"},
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = verify_token(credentials.credentials)
    owner_id = payload.get("sub")
    if not owner_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "INVALID_TOKEN", "message": "Token 缺少用户信息"},
        )
    return str(owner_id)


CurrentOwner = Annotated[str, Depends(get_current_owner)]
