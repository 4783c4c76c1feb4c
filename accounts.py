"""Servicio de alto nivel para el ciclo de vida de las cuentas.

Orquesta alta, autenticación, auto-actualización, actualización administrativa
y borrado sobre el almacén, el validador, el hasher y el emisor de tokens.

Toda actualización sigue la misma reconciliación: se fusiona el parche sobre
una copia en memoria del registro almacenado, se valida, se comprueba la
unicidad y solo entonces se escribe con un único reemplazo. Cualquier fallo
aborta antes de escribir.

No hay bloqueo optimista ni pesimista: dos actualizaciones concurrentes de la
misma cuenta se resuelven por última escritura, y la comprobación previa de
unicidad puede quedar obsoleta; los índices únicos del almacén cierran esa
ventana (el conflicto llega como DuplicateUsername/DuplicateEmail).
"""

import logging
import secrets
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
from config import get_settings
from errors import (
    AccountError, AccountStateError, DuplicateEmail, DuplicateUsername, Forbidden,
    InvalidCredentials, InvalidCurrentPassword, NotFound, ValidationError,
)
from models import Account, PlanType, UserRole
from notifier import EmailSender, EventPublisher, USER_DELETED_EVENT, USER_TOPIC
from security import burn_verify, create_token, hash_password, verify_password
from store import AccountStore, MessageStore, REPLACEABLE_FIELDS
from validators import validate_account

settings = get_settings()
logger = logging.getLogger("accounts.service")

CREATE_FIELDS = frozenset({'first_name', 'last_name', 'username', 'password', 'email'})
PASSWORD_FIELDS = frozenset({'password', 'password_hash', 'current_password', 'new_password'})

# Listas cerradas de campos mutables por operación.
SELF_MUTABLE_FIELDS = frozenset({'first_name', 'last_name', 'email', 'profile_picture'})
SELF_REJECTED_FIELDS = ('role', 'username', 'plan')
ADMIN_MUTABLE_FIELDS = frozenset({'first_name', 'last_name', 'email', 'plan', 'role', 'coins_amount'})
ADMIN_STRIPPED_FIELDS = frozenset({'profile_picture'}) | PASSWORD_FIELDS
ADMIN_REJECTED_FIELDS = ('username',)


@dataclass
class AuthResult:
    """Token recién emitido junto con la cuenta a la que corresponde."""
    token: str
    account: Account


@dataclass
class DeletionReport:
    """Resultado del borrado: la cuenta ya no existe aunque la limpieza falle."""
    username: str
    messages_deleted: int = 0
    cascade_error: Optional[str] = None
    notified: bool = False


def _normalize_email(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower()
    return value


class AccountService:
    """Motor de reconciliación de cuentas."""
    def __init__(
        self,
        store: Optional[AccountStore] = None,
        messages: Optional[MessageStore] = None,
        publisher: Optional[EventPublisher] = None,
        mailer: Optional[EmailSender] = None,
    ):
        self.store = store or AccountStore()
        self.messages = messages or MessageStore()
        self.publisher = publisher or EventPublisher()
        self.mailer = mailer or EmailSender()

    # ------------------------------------------------------------ lectura
    def get(self, username: str) -> Account:
        """Recupera una cuenta por username o lanza NotFound."""
        account = self.store.find_by_username(username)
        if account is None:
            raise NotFound()
        return account

    def list_directory(self, exclude_username: Optional[str] = None) -> List[Account]:
        """Lista las cuentas de rol USER salvo la del propio llamador."""
        return [a for a in self.store.list_by_role(UserRole.USER.value) if a.username != exclude_username]

    # ------------------------------------------------------------ alta
    def create(self, candidate: Dict[str, Any]) -> AuthResult:
        """Registra una cuenta nueva con rol USER forzado.

        Solo se persiste si la validación y el hash tuvieron éxito.
        """
        fields: Dict[str, Any] = {
            'first_name': '',
            'last_name': '',
            'username': '',
            'password': '',
            'email': '',
            'profile_picture': settings.default_picture_url,
            'coins_amount': 0,
            'plan': PlanType.BASIC.value,
        }
        fields.update({k: v for k, v in (candidate or {}).items() if k in CREATE_FIELDS})
        fields['role'] = UserRole.USER.value
        fields['email'] = _normalize_email(fields['email'])
        logger.debug(f"[AccountService.create] username={fields['username']}")

        validate_account(fields, is_update=False, store=self.store)
        fields['password_hash'] = hash_password(fields.pop('password'))
        account = self.store.insert(fields)
        logger.info(f"[AccountService.create] created account id={account.id} username={account.username}")
        return AuthResult(token=create_token(account), account=account)

    # ------------------------------------------------------------ login
    def authenticate(self, username: str, secret: str) -> AuthResult:
        """Verifica credenciales; usuario desconocido y contraseña errónea dan el mismo error."""
        account = self.store.find_by_username(username) if username else None
        if account is None:
            burn_verify(secret)
            raise InvalidCredentials()
        if not verify_password(secret, account.password_hash):
            raise InvalidCredentials()
        return AuthResult(token=create_token(account), account=account)

    # ------------------------------------------------------------ actualizaciones
    def self_update(self, actor_username: str, patch: Dict[str, Any]) -> AuthResult:
        """Actualiza la cuenta del propio actor y emite un token nuevo.

        role, username y plan no se pueden cambiar por esta vía; el cambio de
        contraseña exige current_password válida cuando llega new_password.
        """
        if patch is None:
            raise ValidationError('body', 'no user data provided')
        stored = self.store.find_by_username(actor_username)
        if stored is None:
            # el actor acaba de autenticarse: su ausencia es una inconsistencia
            raise AccountStateError(f"Authenticated account {actor_username} does not exist")

        for key in SELF_REJECTED_FIELDS:
            if key in patch:
                raise Forbidden(f"{key} cannot be updated through this operation")
        allowed = SELF_MUTABLE_FIELDS | {'current_password', 'new_password'}
        patch = self._restrict(patch, allowed, 'self_update')

        account = self._reconcile(stored, patch, allow_password=True)
        return AuthResult(token=create_token(account), account=account)

    def admin_update(self, acting_role: str, target_username: str, patch: Dict[str, Any]) -> Account:
        """Actualización de otra cuenta por un administrador.

        Se descartan imagen de perfil y contraseña; plan y role sí pueden
        cambiar. Una cuenta ADMIN nunca se modifica por esta vía.
        """
        if acting_role != UserRole.ADMIN.value:
            raise Forbidden()
        if patch is None:
            raise ValidationError('body', 'no user data provided')
        patch = {k: v for k, v in patch.items() if k not in ADMIN_STRIPPED_FIELDS}
        for key in ADMIN_REJECTED_FIELDS:
            if key in patch:
                raise Forbidden(f"{key} cannot be updated")
        patch = self._restrict(patch, ADMIN_MUTABLE_FIELDS, 'admin_update')

        stored = self.store.find_by_username(target_username)
        if stored is None:
            raise NotFound()
        return self._reconcile(stored, patch, allow_password=False)

    def reset_password(self, username: str) -> None:
        """Genera una contraseña de un solo uso, guarda su hash y la envía por correo."""
        account = self.store.find_by_username(username)
        if account is None:
            raise NotFound()
        one_time = secrets.token_urlsafe(8)
        updated = self.store.replace(account.id, {'password_hash': hash_password(one_time)})
        if updated is None:
            raise NotFound()
        logger.info(f"[AccountService.reset_password] password reset for username={username}")
        self.mailer.send_password_reset(updated, one_time)

    # ------------------------------------------------------------ borrado
    def delete(self, actor_username: str) -> DeletionReport:
        """Borra la cuenta del actor; la limpieza de mensajes y el aviso son de mejor esfuerzo."""
        deleted = self.store.delete(actor_username)
        if deleted is None:
            raise NotFound()
        report = DeletionReport(username=deleted.username)
        logger.info(f"[AccountService.delete] deleted account username={deleted.username}")

        try:
            report.messages_deleted = self.messages.delete_all_for_participant(deleted.username)
        except AccountError as e:
            logger.error(f"[AccountService.delete] message cascade failed for {deleted.username}: {e}")
            report.cascade_error = e.message

        report.notified = self.publisher.publish(USER_TOPIC, USER_DELETED_EVENT, {'username': deleted.username})
        return report

    def sweep_orphan_messages(self) -> int:
        """Barrido de mantenimiento: borra mensajes de cuentas inexistentes."""
        return self.messages.delete_orphans(self.store.usernames())

    # ------------------------------------------------------------ internos
    def _restrict(self, patch: Dict[str, Any], allowed, operation: str) -> Dict[str, Any]:
        dropped = sorted(k for k in patch if k not in allowed)
        if dropped:
            logger.debug(f"[AccountService.{operation}] ignoring fields {dropped}")
        return {k: v for k, v in patch.items() if k in allowed}

    # _merge: Aplica en sitio los campos que difieren; retorna (username_changed, email_changed).
    def _merge(self, candidate: Dict[str, Any], patch: Dict[str, Any]) -> Tuple[bool, bool]:
        username_changed = False
        email_changed = False
        for key, value in patch.items():
            if key in PASSWORD_FIELDS:
                continue
            if key == 'email':
                value = _normalize_email(value)
            if candidate.get(key) != value:
                if key == 'username':
                    username_changed = True
                elif key == 'email':
                    email_changed = True
                candidate[key] = value
        return username_changed, email_changed

    def _apply_password(self, candidate: Dict[str, Any], patch: Dict[str, Any]) -> None:
        new_password = patch.get('new_password')
        if not isinstance(new_password, str) or new_password.strip() == '':
            return
        current = patch.get('current_password')
        if not current or not verify_password(current, candidate['password_hash']):
            raise InvalidCurrentPassword()
        candidate['password_hash'] = hash_password(new_password)

    def _check_unique(self, candidate: Dict[str, Any], account_id: int, username_changed: bool, email_changed: bool) -> None:
        if username_changed:
            other = self.store.find_by_username(candidate['username'])
            if other is not None and other.id != account_id:
                raise DuplicateUsername()
        if email_changed:
            other = self.store.find_by_email(candidate['email'])
            if other is not None and other.id != account_id:
                raise DuplicateEmail()

    # _reconcile: Fusión, validación, reglas de rol, unicidad y escritura única.
    def _reconcile(self, stored: Account, patch: Dict[str, Any], allow_password: bool) -> Account:
        original = stored.model_dump()
        candidate = dict(original)
        username_changed, email_changed = self._merge(candidate, patch)
        if allow_password:
            self._apply_password(candidate, patch)

        validate_account(candidate, is_update=True)
        if original['role'] == UserRole.ADMIN.value:
            raise Forbidden()
        self._check_unique(candidate, stored.id, username_changed, email_changed)

        changes = {k: candidate[k] for k in REPLACEABLE_FIELDS if candidate[k] != original[k]}
        if not changes:
            return stored
        updated = self.store.replace(stored.id, changes)
        if updated is None:
            raise NotFound()
        logger.info(f"[AccountService] updated username={updated.username} fields={sorted(changes)}")
        return updated
