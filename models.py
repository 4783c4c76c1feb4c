"""Modelos de datos persistentes.

Incluye las cuentas del directorio y los mensajes que dependen de ellas
(remitente/destinatario por username).
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from sqlmodel import SQLModel, Field


# _utcnow: Marca de tiempo con zona horaria UTC.
def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PlanType(str, Enum):
    BASIC = 'BASIC'
    FREE = 'FREE'
    PREMIUM = 'PREMIUM'
    PRO = 'PRO'
    ADVANCED = 'ADVANCED'


class UserRole(str, Enum):
    USER = 'USER'
    ADMIN = 'ADMIN'


class Account(SQLModel, table=True):
    """Registro de identidad de un usuario.

    Campos:
      username: Único, inmutable tras la creación.
      email: Único.
      password_hash: Hash bcrypt; nunca se serializa hacia afuera.
      coins_amount: Entero no negativo.
      plan: BASIC | FREE | PREMIUM | PRO | ADVANCED.
      role: USER | ADMIN.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    first_name: str = ''
    last_name: str = ''
    username: str = Field(index=True, unique=True)
    email: str = Field(index=True, unique=True)
    password_hash: str
    profile_picture: str = ''
    coins_amount: int = Field(default=0)
    plan: str = Field(default=PlanType.BASIC.value)
    role: str = Field(default=UserRole.USER.value, index=True)


class Message(SQLModel, table=True):
    """Mensaje entre dos cuentas; se borra en cascada al eliminar cualquiera de ellas."""
    id: Optional[int] = Field(default=None, primary_key=True)
    sender: str = Field(index=True)
    receiver: str = Field(index=True)
    content: str = ''
    created_at: datetime = Field(default_factory=_utcnow)


# public_view: Representación externa de la cuenta (camelCase, sin password_hash).
def public_view(account: Account) -> dict:
    return {
        'id': account.id,
        'firstName': account.first_name,
        'lastName': account.last_name,
        'username': account.username,
        'email': account.email,
        'profilePicture': account.profile_picture,
        'coinsAmount': account.coins_amount,
        'plan': account.plan,
        'role': account.role,
    }


# minimal_view: Vista reducida usada en el listado del directorio.
def minimal_view(account: Account) -> dict:
    return {'username': account.username, 'profilePicture': account.profile_picture}
