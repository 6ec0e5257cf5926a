"""
Dependencies de FastAPI para autenticación.

Las consultas requieren un usuario autenticado; la sincronización
acepta dispositivos sin sesión (actor anónimo).
"""

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agrisync.auth.jwt import TokenType, decode_token
from agrisync.core.exceptions import CredentialsException
from agrisync.database import get_db
from agrisync.models.user import User

# ── Security schemes ─────────────────────────────────
security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


# ── Token payload tipado ─────────────────────────────
class TokenPayload:
    """Datos extraídos del token JWT decodificado."""

    def __init__(self, payload: dict):
        self.user_id: str = str(payload["sub"])
        self.role: str = payload.get("role", "")
        self.token_type: str = payload.get("type", TokenType.ACCESS)


async def _load_user(token: str, db: AsyncSession) -> User:
    try:
        payload = decode_token(token)
    except jwt.InvalidTokenError:
        raise CredentialsException("Token inválido o expirado")

    token_data = TokenPayload(payload)

    # Verificar que es un access token
    if token_data.token_type != TokenType.ACCESS:
        raise CredentialsException("Tipo de token inválido")

    result = await db.execute(
        select(User).where(
            User.id == token_data.user_id,
            User.is_active.is_(True),
        )
    )
    user = result.scalar_one_or_none()

    if user is None:
        raise CredentialsException("Usuario no encontrado o inactivo")

    return user


# ── Obtener usuario actual ───────────────────────────
async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Decodifica el JWT del header Authorization y carga el usuario."""
    return await _load_user(credentials.credentials, db)


# ── Usuario opcional (sincronización) ────────────────
async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(optional_security),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    """
    Sin header Authorization retorna None (actor anónimo).
    Un token presente pero inválido sigue siendo un 401.
    """
    if credentials is None:
        return None
    return await _load_user(credentials.credentials, db)
