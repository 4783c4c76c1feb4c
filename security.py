"""Funciones de seguridad: hashing de contraseñas y manejo de JWT.

Se utiliza bcrypt vía passlib para almacenar contraseñas y PyJWT para tokens.
Los tokens son sin estado: no hay lista de revocación, solo la expiración.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from passlib.context import CryptContext
import jwt
from config import get_settings
from errors import InvalidToken

settings = get_settings()
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.bcrypt_rounds)


@dataclass(frozen=True)
class TokenClaims:
    """Identidad y rol extraídos de un token válido."""
    username: str
    role: str


def _truncate(password: str) -> str:
    # bcrypt solo considera los primeros 72 bytes
    return password.encode('utf-8')[:72].decode('utf-8', errors='ignore')

# hash_password: Genera hash bcrypt (con sal aleatoria) de una contraseña en texto plano.
def hash_password(password: str) -> str:
    return pwd_context.hash(_truncate(password))

# verify_password: Verifica si la contraseña suministrada coincide con el hash.
# Un hash vacío o malformado nunca verifica.
def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return pwd_context.verify(_truncate(password), password_hash)
    except ValueError:
        return False

@lru_cache
def _dummy_hash() -> str:
    return hash_password('not-a-real-password')

# burn_verify: Ejecuta una verificación descartable para igualar tiempos
# cuando el usuario no existe.
def burn_verify(password: str) -> None:
    verify_password(password or 'x', _dummy_hash())

# create_token: Crea un JWT con username y rol de la cuenta, expirando en minutos configurados.
def create_token(account) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": account.username,
        "role": account.role,
        "iat": now,
        "exp": now + timedelta(minutes=settings.jwt_exp_minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)

# decode_token: Decodifica el JWT y retorna sus claims; lanza InvalidToken si
# está alterado, expirado, malformado o le faltan claims.
def decode_token(token: str) -> TokenClaims:
    try:
        data = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "sub"]},
        )
    except jwt.PyJWTError:
        raise InvalidToken()
    username = data.get('sub')
    role = data.get('role')
    if not username or not role:
        raise InvalidToken()
    return TokenClaims(username=username, role=role)
