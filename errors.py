"""Taxonomía de errores del servicio de cuentas.

Cada error lleva el código HTTP con el que la capa web lo responde; el núcleo
solo lanza estas excepciones y nunca construye respuestas.
"""

from typing import Optional


class AccountError(Exception):
    """Error base de todas las operaciones sobre cuentas."""
    status_code = 400
    default_message = 'Something went wrong with the account operation'

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AccountError):
    """Forma inválida o campo requerido ausente; indica el primer campo que falla."""
    default_message = 'Invalid account data'

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}")


class DuplicateUsername(AccountError):
    default_message = 'Username already exists'


class DuplicateEmail(AccountError):
    default_message = 'Email already exists'


class InvalidCredentials(AccountError):
    """Fallo de autenticación sin distinguir usuario o contraseña."""
    default_message = 'Invalid username or password'


class InvalidCurrentPassword(AccountError):
    default_message = 'Invalid current password'


class InvalidToken(AccountError):
    status_code = 401
    default_message = 'Invalid or expired token'


class Forbidden(AccountError):
    status_code = 403
    default_message = 'You are not allowed to perform this update'


class NotFound(AccountError):
    status_code = 404
    default_message = 'User does not exist'


class StoreError(AccountError):
    """Fallo de infraestructura en el almacenamiento; se propaga sin reintentos."""
    default_message = 'Something went wrong while accessing the account store'


class DeliveryError(AccountError):
    default_message = 'The email could not be delivered'


class AccountStateError(AccountError):
    """Inconsistencia interna, p.ej. el actor autenticado ya no existe."""
    status_code = 500
    default_message = 'Account state is inconsistent'
