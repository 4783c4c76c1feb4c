import os
import tempfile

# Apuntar el servicio a una base de datos aislada antes de que cualquier módulo lea la configuración
_TMP_DIR = tempfile.mkdtemp(prefix="accounts-tests-")
os.environ["ACCOUNTS_DB_URL"] = f"sqlite:///{_TMP_DIR}/accounts.db"
os.environ["UPLOAD_DIR"] = os.path.join(_TMP_DIR, "uploads")
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["NOTIFY_URL"] = ""
os.environ["ENV_MODE"] = "test"

import pytest
from fastapi.testclient import TestClient
from sqlmodel import or_, select

from accounts import AccountService
from database import DBSession, reset_db
from errors import StoreError
from models import Message, UserRole
from security import hash_password
from store import AccountStore, MessageStore


class FakePublisher:
    def __init__(self):
        self.events = []

    def publish(self, topic, event_type, payload):
        self.events.append((topic, event_type, payload))
        return True


class FakeMailer:
    def __init__(self):
        self.sent = []

    def send_password_reset(self, account, password):
        self.sent.append((account.username, password))


def messages_for(username):
    with DBSession() as s:
        statement = select(Message).where(or_(Message.sender == username, Message.receiver == username))
        return list(s.exec(statement).all())


class FailingMessageStore(MessageStore):
    def delete_all_for_participant(self, username):
        raise StoreError("messages collection unavailable")


@pytest.fixture(autouse=True)
def clean_db():
    reset_db()
    yield


@pytest.fixture
def store():
    return AccountStore()


@pytest.fixture
def messages():
    return MessageStore()


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def service(store, messages, publisher, mailer):
    return AccountService(store=store, messages=messages, publisher=publisher, mailer=mailer)


@pytest.fixture
def john(service):
    return service.create({
        "first_name": "John",
        "last_name": "Doe",
        "username": "johndoe",
        "password": "john123",
        "email": "johndoe@test.com",
    })


@pytest.fixture
def admin(store):
    return store.insert({
        "first_name": "Admin",
        "last_name": "User",
        "username": "admin",
        "password_hash": hash_password("password"),
        "email": "admin@example.com",
        "plan": "PRO",
        "role": UserRole.ADMIN.value,
    })


@pytest.fixture
def client(service):
    from app import app, get_service

    app.dependency_overrides[get_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()
