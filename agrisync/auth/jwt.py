"""
Verificación de JWT emitidos por la capa de autenticación.
Este servicio solo decodifica: la emisión de tokens vive fuera de él.
"""

import jwt

from agrisync.config import get_settings

settings = get_settings()


class TokenType:
    ACCESS = "access"
    REFRESH = "refresh"


def decode_token(token: str) -> dict:
    """
    Decodifica y verifica un token JWT.
    Lanza jwt.InvalidTokenError si el token es inválido o expirado.
    """
    return jwt.decode(
        token,
        settings.jwt_verification_key,
        algorithms=[settings.JWT_ALGORITHM],
        options={"require": ["sub", "exp"]},
    )

