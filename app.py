"""Aplicación FastAPI principal con los endpoints del directorio de usuarios.

Cada ruta delega en AccountService; los errores del núcleo se traducen a
respuestas {"error": ...} con el código HTTP que cada excepción declara.
"""

import logging
from typing import Optional
from fastapi import FastAPI, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ValidationError as PayloadError
from accounts import AccountService
from config import get_settings
from database import init_db
from errors import AccountError, ValidationError, InvalidToken, Forbidden
from models import UserRole, public_view, minimal_view
from security import TokenClaims, decode_token
from seed import populate_initial
from storage import PictureStorage

settings = get_settings()
logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("accounts.api")

app = FastAPI(title="Users Directory API", version="1.0.0")
security = HTTPBearer(auto_error=False)

settings.upload_dir.mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=str(settings.upload_dir)), name="uploads")

# Nombres de campo en el cable (camelCase) -> nombres internos.
WIRE_FIELDS = {
    'firstName': 'first_name',
    'lastName': 'last_name',
    'username': 'username',
    'password': 'password',
    'email': 'email',
    'profilePicture': 'profile_picture',
    'coinsAmount': 'coins_amount',
    'plan': 'plan',
    'role': 'role',
    'currentPassword': 'current_password',
    'newPassword': 'new_password',
}
WIRE_NAMES = {v: k for k, v in WIRE_FIELDS.items()}

# ---------------------------- Schemas ----------------------------
class UserLogin(BaseModel):
    """Payload para inicio de sesión y obtención de JWT."""
    username: Optional[str] = None
    password: Optional[str] = None

class UserPost(BaseModel):
    """Payload de registro; el rol siempre será USER."""
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    email: Optional[str] = None

class UserPut(BaseModel):
    """Payload de auto-actualización.

    role, username y plan se aceptan solo para poder rechazarlos explícitamente.
    """
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    email: Optional[str] = None
    profilePicture: Optional[str] = None
    currentPassword: Optional[str] = None
    newPassword: Optional[str] = None
    username: Optional[str] = None
    role: Optional[str] = None
    plan: Optional[str] = None

class UserPutAdmin(BaseModel):
    """Payload de actualización administrativa."""
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    email: Optional[str] = None
    plan: Optional[str] = None
    role: Optional[str] = None
    coinsAmount: Optional[int] = None
    username: Optional[str] = None
    profilePicture: Optional[str] = None
    password: Optional[str] = None
    currentPassword: Optional[str] = None
    newPassword: Optional[str] = None

# to_fields: Traduce un payload del cable a claves internas, solo con lo enviado.
def to_fields(payload: dict) -> dict:
    return {WIRE_FIELDS[k]: v for k, v in payload.items() if k in WIRE_FIELDS}

# ----------------------- Dependencies ----------------------------
service = AccountService()
pictures = PictureStorage()

def get_service() -> AccountService:
    return service

def get_pictures() -> PictureStorage:
    return pictures

def get_claims(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> TokenClaims:
    """Obtiene username y rol del token Bearer o lanza 401."""
    if credentials is None or not credentials.credentials:
        raise InvalidToken('Missing bearer token')
    return decode_token(credentials.credentials)

def require_role(role: str):
    """Genera dependencia que valida que el token tenga el rol requerido."""
    def checker(claims: TokenClaims = Depends(get_claims)):
        if claims.role != role:
            raise Forbidden("Forbidden: insufficient role")
        return claims
    return checker

# ----------------------- Error handlers --------------------------
@app.exception_handler(AccountError)
def account_error_handler(request: Request, exc: AccountError):
    content = {"error": exc.message}
    if isinstance(exc, ValidationError):
        content["field"] = WIRE_NAMES.get(exc.field, exc.field)
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)

@app.exception_handler(RequestValidationError)
def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": "Invalid request body"})

@app.exception_handler(Exception)
def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unexpected error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})

# ------------------------- Startup Event -------------------------
@app.on_event("startup")
def on_startup():
    """Inicializa la base de datos y carga datos semilla fuera de producción."""
    init_db()
    populate_initial()

# -------------------------- Utility ------------------------------
@app.get('/check')
def check():
    return {"message": "The users service is working properly"}

@app.get('/health')
def health():
    return {"status": "ok"}

# --------------------------- GET Routes --------------------------
@app.get('/me')
def get_me(claims: TokenClaims = Depends(get_claims), svc: AccountService = Depends(get_service)):
    """Devuelve la información del usuario autenticado."""
    return {"data": public_view(svc.get(claims.username))}

@app.get('/all')
def get_all(claims: TokenClaims = Depends(get_claims), svc: AccountService = Depends(get_service)):
    """Listado mínimo (username, foto) de los usuarios, sin incluir al llamador."""
    return {"data": [minimal_view(a) for a in svc.list_directory(exclude_username=claims.username)]}

@app.get('/reset')
def reset(username: str, svc: AccountService = Depends(get_service)):
    """Genera una contraseña nueva y la envía por correo al usuario."""
    svc.reset_password(username)
    return {"message": "Password reset!"}

@app.get('/{username}')
def get_user(username: str, claims: TokenClaims = Depends(get_claims), svc: AccountService = Depends(get_service)):
    """Devuelve la información del usuario con el username indicado."""
    return {"data": public_view(svc.get(username))}

# -------------------------- POST Routes --------------------------
@app.post('/new', status_code=201)
def create_user(payload: UserPost, svc: AccountService = Depends(get_service)):
    """Registra un usuario nuevo y devuelve su token."""
    result = svc.create(to_fields(payload.model_dump(exclude_unset=True)))
    return {"data": {"token": result.token, "user": public_view(result.account)}}

@app.post('/login')
def login(payload: UserLogin, svc: AccountService = Depends(get_service)):
    """Autentica usuario y devuelve token JWT para futuras peticiones."""
    result = svc.authenticate(payload.username or '', payload.password or '')
    return {"data": {"token": result.token, "user": public_view(result.account)}}

@app.post('/admin/reconcile')
def reconcile(claims: TokenClaims = Depends(require_role(UserRole.ADMIN.value)),
              svc: AccountService = Depends(get_service)):
    """Elimina mensajes que referencian cuentas inexistentes."""
    return {"performed": svc.sweep_orphan_messages()}

# --------------------------- PUT Routes --------------------------
@app.put('/me')
async def update_me(request: Request,
                    claims: TokenClaims = Depends(get_claims),
                    svc: AccountService = Depends(get_service),
                    storage: PictureStorage = Depends(get_pictures)):
    """Actualiza al usuario autenticado (JSON, o multipart con archivo profilePicture).

    El token nuevo se devuelve en el cuerpo y en la cabecera Authorization.
    """
    content_type = request.headers.get('content-type', '')
    upload = None
    if content_type.startswith('multipart/form-data'):
        form = await request.form()
        raw = {k: v for k, v in form.items() if k != 'profilePicture'}
        picture = form.get('profilePicture')
        if isinstance(picture, str):
            raw['profilePicture'] = picture
        elif picture is not None:
            upload = picture
    else:
        try:
            body = await request.json()
        except ValueError:
            raise ValidationError('body', 'no user data provided')
        if not isinstance(body, dict):
            raise ValidationError('body', 'no user data provided')
        raw = body
    try:
        payload = UserPut.model_validate(raw)
    except PayloadError as e:
        first = e.errors()[0]
        raise ValidationError(str(first["loc"][0]) if first.get("loc") else "body", first["msg"])
    patch = to_fields(payload.model_dump(exclude_unset=True))

    # el archivo solo se guarda tras validar el resto del formulario
    saved_url = None
    if upload is not None:
        data = await upload.read()
        saved_url = await run_in_threadpool(storage.save, upload.filename, data)
        patch['profile_picture'] = saved_url

    # hashing bcrypt fuera del event loop
    try:
        result = await run_in_threadpool(svc.self_update, claims.username, patch)
    except Exception:
        if saved_url:
            storage.discard(saved_url)
        raise
    return JSONResponse(
        status_code=200,
        content={"message": "User updated!", "data": {"token": result.token, "user": public_view(result.account)}},
        headers={"Authorization": f"Bearer {result.token}"},
    )

@app.put('/{username}')
def update_user(username: str, payload: UserPutAdmin,
                claims: TokenClaims = Depends(get_claims),
                svc: AccountService = Depends(get_service)):
    """Actualización administrativa del usuario indicado."""
    account = svc.admin_update(claims.role, username, to_fields(payload.model_dump(exclude_unset=True)))
    return {"message": "User updated!", "data": public_view(account)}

# ------------------------- DELETE Routes -------------------------
@app.delete('/me')
def delete_me(claims: TokenClaims = Depends(get_claims), svc: AccountService = Depends(get_service)):
    """Elimina al usuario autenticado y, con mejor esfuerzo, sus mensajes."""
    report = svc.delete(claims.username)
    content = {"message": "User deleted!", "messagesDeleted": report.messages_deleted, "notified": report.notified}
    if report.cascade_error:
        content["warning"] = f"Messages could not be removed: {report.cascade_error}"
    return content
