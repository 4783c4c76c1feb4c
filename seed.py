"""Carga de datos iniciales para entornos que no son de producción."""

import logging
from config import get_settings
from models import PlanType, UserRole
from security import hash_password
from store import AccountStore, MessageStore

logger = logging.getLogger("accounts.seed")

# populate_initial: Inserta usuarios de ejemplo y el administrador si la tabla
# está vacía (o siempre, si RESET_DB_ON_EACH_RELOAD está activo).
# Tras recargar, borra los mensajes que quedaron sin cuenta.
# Retorna el número de cuentas insertadas.
def populate_initial(store: AccountStore = None, messages: MessageStore = None) -> int:
    settings = get_settings()
    store = store or AccountStore()
    messages = messages or MessageStore()
    if settings.env_mode == 'production':
        return 0
    if store.count() > 0 and not settings.reset_db_on_reload:
        return 0

    logger.info("Populating DB...")
    store.delete_all()
    inserted = 0
    for user in settings.seed_users:
        store.insert({
            'first_name': user['first_name'],
            'last_name': user['last_name'],
            'username': user['username'],
            'password_hash': hash_password(user['password']),
            'email': user['email'].lower(),
            'profile_picture': settings.default_picture_url,
            'plan': user['plan'] if user['plan'] in PlanType.__members__ else PlanType.BASIC.value,
            'role': UserRole.USER.value,
        })
        inserted += 1
    store.insert({
        'first_name': 'Admin',
        'last_name': 'User',
        'username': settings.admin_username,
        'password_hash': hash_password(settings.admin_password),
        'email': settings.admin_email.lower(),
        'profile_picture': settings.default_picture_url,
        'plan': PlanType.PRO.value,
        'role': UserRole.ADMIN.value,
    })
    inserted += 1
    messages.delete_orphans(store.usernames())
    logger.info("Populated %d accounts", inserted)
    return inserted
