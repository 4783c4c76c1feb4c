"""Validación estructural de cuentas candidatas.

Comprobación pura (sin escrituras) que se detiene en la primera regla violada.
En actualizaciones la unicidad de username/email la resuelve el servicio de
cuentas, comparando contra el valor previo almacenado.
"""

from typing import Any, Dict, Optional
from pydantic import EmailStr, TypeAdapter, ValidationError as EmailFormatError
from errors import ValidationError, DuplicateUsername, DuplicateEmail
from models import PlanType, UserRole

_EMAIL = TypeAdapter(EmailStr)

REQUIRED_ON_CREATE = ('first_name', 'last_name', 'username', 'password', 'email')
REQUIRED_ON_UPDATE = ('first_name', 'last_name', 'username', 'email')

_PLANS = {p.value for p in PlanType}
_ROLES = {r.value for r in UserRole}


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == '')

# _check_email: Valida el formato con EmailStr; rechaza la forma "Nombre <correo>".
def _check_email(value: str) -> None:
    raw = value.strip()
    try:
        normalized = _EMAIL.validate_python(raw)
    except EmailFormatError:
        raise ValidationError('email', 'is not a valid email address')
    if normalized.lower() != raw.lower():
        raise ValidationError('email', 'is not a valid email address')

# validate_account: Valida la cuenta candidata (dict snake_case).
# Lanza ValidationError / DuplicateUsername / DuplicateEmail; retorna None si es válida.
def validate_account(candidate: Dict[str, Any], is_update: bool = False, store: Optional[Any] = None) -> None:
    required = REQUIRED_ON_UPDATE if is_update else REQUIRED_ON_CREATE
    for field in required:
        value = candidate.get(field)
        if _blank(value):
            raise ValidationError(field, 'is required')
        if not isinstance(value, str):
            raise ValidationError(field, 'must be a string')

    _check_email(candidate['email'])

    if candidate.get('plan') not in _PLANS:
        raise ValidationError('plan', f"must be one of {sorted(_PLANS)}")
    if candidate.get('role') not in _ROLES:
        raise ValidationError('role', f"must be one of {sorted(_ROLES)}")

    coins = candidate.get('coins_amount', 0)
    if isinstance(coins, bool) or not isinstance(coins, int):
        raise ValidationError('coins_amount', 'must be an integer')
    if coins < 0:
        raise ValidationError('coins_amount', 'must not be negative')

    if is_update or store is None:
        return
    if store.find_by_username(candidate['username']) is not None:
        raise DuplicateUsername()
    if store.find_by_email(candidate['email']) is not None:
        raise DuplicateEmail()
