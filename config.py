"""Módulo de configuración del servicio de cuentas.

Proporciona lectura de variables de entorno (con soporte de archivo .env local)
y agrupa los parámetros de base de datos, JWT, hashing, almacenamiento de
imágenes, notificaciones y correo.

Formato esperado en SEED_USERS (opcional):
  "nombre|apellido|username|password|email|plan,..."
"""

import os
from pathlib import Path
from functools import lru_cache
from typing import List, Dict
from dotenv import load_dotenv

# parse_seed_users: Convierte la cadena cruda de usuarios semilla en una lista
# de diccionarios con nombre, apellido, username, password, email y plan.
def parse_seed_users(raw: str) -> List[Dict[str, str]]:
    users: List[Dict[str, str]] = []
    if not raw:
        return users
    for item in raw.split(','):
        parts = item.split('|')
        if len(parts) >= 6:
            users.append({
                'first_name': parts[0].strip(),
                'last_name': parts[1].strip(),
                'username': parts[2].strip(),
                'password': parts[3].strip(),
                'email': parts[4].strip(),
                'plan': parts[5].strip().upper(),
            })
    return users

def _as_bool(raw: str) -> bool:
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')

# get_settings: Devuelve (cacheado) la instancia única de Settings.
@lru_cache
def get_settings():
    return Settings()

class Settings:
    """Agrupa todos los parámetros de configuración usados en la aplicación.

    Se inicializa leyendo variables de entorno. Incluye conexión a base de
    datos, firma de tokens, coste de bcrypt y colaboradores externos.
    """
    def __init__(self):
        # Cargar .env local (aislado al directorio del módulo)
        base_dir = Path(__file__).resolve().parent
        load_dotenv(base_dir / '.env')

        default_db_path = base_dir / 'accounts.db'
        self.database_url = os.getenv('ACCOUNTS_DB_URL', f"sqlite:///{default_db_path}")
        self.jwt_secret = os.getenv('JWT_SECRET', 'dev-secret-change')
        self.jwt_algorithm = os.getenv('JWT_ALG', 'HS256')
        self.jwt_exp_minutes = int(os.getenv('JWT_EXP_MIN', '60'))
        self.bcrypt_rounds = int(os.getenv('BCRYPT_ROUNDS', '10'))

        # Imagen de perfil: URL por defecto y almacenamiento local de subidas.
        self.public_base_url = os.getenv('PUBLIC_BASE_URL', 'http://localhost:8000').rstrip('/')
        self.default_picture_url = os.getenv(
            'DEFAULT_PICTURE_URL', f"{self.public_base_url}/uploads/default-user.jpg"
        )
        self.upload_dir = Path(os.getenv('UPLOAD_DIR', str(base_dir / 'uploads')))
        self.max_picture_bytes = int(os.getenv('MAX_PICTURE_BYTES', str(5 * 1024 * 1024)))

        # Bus de notificaciones (mejor esfuerzo, vacío = deshabilitado).
        self.notify_url = os.getenv('NOTIFY_URL', '')
        self.notify_api_key = os.getenv('NOTIFY_API_KEY', '')
        self.request_timeout = float(os.getenv('REQUEST_TIMEOUT', '3'))

        # Correo transaccional (recuperación de contraseña).
        self.brevo_api_url = os.getenv('BREVO_API_URL', 'https://api.brevo.com/v3/smtp/email')
        self.brevo_api_key = os.getenv('BREVO_API_KEY', '')
        self.mail_sender_name = os.getenv('MAIL_SENDER_NAME', 'Accounts Team')
        self.mail_sender_email = os.getenv('MAIL_SENDER_EMAIL', 'no-reply@example.com')
        self.login_url = os.getenv('LOGIN_URL', self.public_base_url)

        # Datos semilla: solo fuera de producción.
        self.env_mode = os.getenv('ENV_MODE', 'development').lower()
        self.reset_db_on_reload = _as_bool(os.getenv('RESET_DB_ON_EACH_RELOAD', 'false'))
        self.admin_username = os.getenv('ADMIN_USERNAME', 'admin')
        self.admin_password = os.getenv('ADMIN_PASSWORD', 'password')
        self.admin_email = os.getenv('ADMIN_EMAIL', 'admin@example.com')
        self.seed_users = parse_seed_users(os.getenv('SEED_USERS', ''))
        if not self.seed_users:
            self.seed_users = [
                {'first_name': 'Maria', 'last_name': 'Doe', 'username': 'mariaDoe', 'password': 'maria123', 'email': 'maria@example.com', 'plan': 'FREE'},
                {'first_name': 'John', 'last_name': 'Doe', 'username': 'johnDoe', 'password': 'john123', 'email': 'juan@example.com', 'plan': 'PREMIUM'},
            ]

        self.log_level = os.getenv('LOG_LEVEL', 'INFO').upper()
