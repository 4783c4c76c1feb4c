"""Almacenamiento de cuentas y mensajes sobre SQLModel.

Los índices únicos de username/email son la fuente autoritativa de unicidad:
un IntegrityError al insertar o reemplazar se traduce a DuplicateUsername o
DuplicateEmail. Cualquier otro error de SQLAlchemy se propaga como StoreError.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import select, col, or_, func
from models import Account, Message
from database import DBSession
from errors import DuplicateEmail, DuplicateUsername, StoreError

logger = logging.getLogger("accounts.store")

# Campos que replace() acepta; id nunca se modifica.
REPLACEABLE_FIELDS = (
    'first_name', 'last_name', 'username', 'email', 'password_hash',
    'profile_picture', 'coins_amount', 'plan', 'role',
)


def _conflict_from(exc: IntegrityError):
    detail = str(exc.orig).lower()
    if 'username' in detail:
        return DuplicateUsername()
    if 'email' in detail:
        return DuplicateEmail()
    return StoreError(f"Constraint violation: {exc.orig}")


class AccountStore:
    """Almacén de cuentas: búsquedas por username/email, alta, reemplazo parcial y borrado."""

    def find_by_username(self, username: str) -> Optional[Account]:
        return self._first(select(Account).where(Account.username == username))

    def find_by_email(self, email: str) -> Optional[Account]:
        return self._first(select(Account).where(func.lower(Account.email) == email.strip().lower()))

    def list_by_role(self, role: str) -> List[Account]:
        try:
            with DBSession() as s:
                statement = select(Account).where(Account.role == role).order_by(Account.id)
                return list(s.exec(statement).all())
        except SQLAlchemyError as e:
            raise StoreError(str(e))

    def usernames(self) -> List[str]:
        try:
            with DBSession() as s:
                return list(s.exec(select(Account.username)).all())
        except SQLAlchemyError as e:
            raise StoreError(str(e))

    def count(self) -> int:
        try:
            with DBSession() as s:
                return s.exec(select(func.count()).select_from(Account)).one()
        except SQLAlchemyError as e:
            raise StoreError(str(e))

    # insert: Persiste una cuenta nueva y la retorna con su id asignado.
    def insert(self, fields: Dict[str, Any]) -> Account:
        account = Account(**{k: v for k, v in fields.items() if k in REPLACEABLE_FIELDS})
        try:
            with DBSession() as s:
                s.add(account)
                s.commit()
                s.refresh(account)
                return account
        except IntegrityError as e:
            raise _conflict_from(e)
        except SQLAlchemyError as e:
            raise StoreError(str(e))

    # replace: Sobrescribe los campos indicados de la cuenta en una sola escritura.
    # Retorna la cuenta actualizada o None si ya no existe.
    def replace(self, account_id: int, fields: Dict[str, Any]) -> Optional[Account]:
        try:
            with DBSession() as s:
                account = s.get(Account, account_id)
                if account is None:
                    return None
                for key, value in fields.items():
                    if key in REPLACEABLE_FIELDS:
                        setattr(account, key, value)
                s.add(account)
                s.commit()
                s.refresh(account)
                return account
        except IntegrityError as e:
            raise _conflict_from(e)
        except SQLAlchemyError as e:
            raise StoreError(str(e))

    # delete: Borra la cuenta por username; retorna la cuenta eliminada o None.
    def delete(self, username: str) -> Optional[Account]:
        try:
            with DBSession() as s:
                account = s.exec(select(Account).where(Account.username == username)).first()
                if account is None:
                    return None
                s.delete(account)
                s.commit()
                return account
        except SQLAlchemyError as e:
            raise StoreError(str(e))

    def delete_all(self) -> int:
        try:
            with DBSession() as s:
                rows = s.exec(select(Account)).all()
                for row in rows:
                    s.delete(row)
                s.commit()
                return len(rows)
        except SQLAlchemyError as e:
            raise StoreError(str(e))

    def _first(self, statement) -> Optional[Account]:
        try:
            with DBSession() as s:
                return s.exec(statement).first()
        except SQLAlchemyError as e:
            raise StoreError(str(e))


class MessageStore:
    """Colaborador de mensajes: solo se usa para la limpieza en cascada."""

    def add(self, sender: str, receiver: str, content: str = '') -> Message:
        try:
            with DBSession() as s:
                message = Message(sender=sender, receiver=receiver, content=content)
                s.add(message)
                s.commit()
                s.refresh(message)
                return message
        except SQLAlchemyError as e:
            raise StoreError(str(e))

    # delete_all_for_participant: Borra los mensajes donde username es remitente o destinatario.
    # Idempotente: repetirla tras un fallo parcial es seguro.
    def delete_all_for_participant(self, username: str) -> int:
        try:
            with DBSession() as s:
                statement = select(Message).where(or_(Message.sender == username, Message.receiver == username))
                rows = s.exec(statement).all()
                for row in rows:
                    s.delete(row)
                s.commit()
                return len(rows)
        except SQLAlchemyError as e:
            raise StoreError(str(e))

    # delete_orphans: Borra mensajes que referencian usernames que ya no existen.
    def delete_orphans(self, known_usernames: Iterable[str]) -> int:
        known = list(known_usernames)
        try:
            with DBSession() as s:
                statement = select(Message).where(
                    or_(col(Message.sender).not_in(known), col(Message.receiver).not_in(known))
                )
                rows = s.exec(statement).all()
                for row in rows:
                    s.delete(row)
                s.commit()
                logger.info("Orphan sweep removed %d messages", len(rows))
                return len(rows)
        except SQLAlchemyError as e:
            raise StoreError(str(e))
