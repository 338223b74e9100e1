import os
import sys
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# settings are read on first use, before the app is imported
os.environ.setdefault("TOKEN_SECRET", "test-secret-key")
os.environ.setdefault("ADMIN_FIRSTNAME", "Ada")
os.environ.setdefault("ADMIN_LASTNAME", "Admin")
os.environ.setdefault("ADMIN_EMAIL", "admin@stone.com")
os.environ.setdefault("ADMIN_PASSWORD", "Admin*123")
os.environ.setdefault("MAX_BOOK_PER_LOAN", "3")
os.environ.pop("SMTP_HOST", None)

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from library_api.config import get_settings
from library_api.database import Base, get_db
from library_api.hashing import hash_password
from library_api.main import app
from library_api.mailer import get_mailer
from library_api.models import Book, Role, User
from library_api.security import token_store
from library_api.seed import seed_defaults


ADMIN_EMAIL = os.environ["ADMIN_EMAIL"]
ADMIN_PASSWORD = os.environ["ADMIN_PASSWORD"]
PASSWORD = "Secret*1"

engine = create_engine(
    "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


class RecordingMailer:
    """Stands in for the SMTP sender and keeps every message."""

    def __init__(self):
        self.sent = []

    def send(self, to, subject, body):
        self.sent.append({"to": to, "subject": subject, "body": body})
        return True


mailer = RecordingMailer()

app.dependency_overrides[get_db] = override_get_db
app.dependency_overrides[get_mailer] = lambda: mailer
client = TestClient(app)


@pytest.fixture(autouse=True)
def setup_database():
    """Fresh schema, default roles/permissions and admin account for every test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        seed_defaults(db, get_settings())
    finally:
        db.close()
    token_store.clear()
    mailer.sent.clear()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


# Helper functions
def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


def login(email, password=PASSWORD):
    res = client.post("/api/login", json={"email": email, "password": password})
    assert res.status_code == 200, res.text
    return res.json()["token"]


def make_user(email, role_ids, password=PASSWORD, firstname="Test", lastname="User"):
    db = TestingSessionLocal()
    try:
        user = User(firstname=firstname, lastname=lastname, email=email, password=hash_password(password))
        user.roles = db.query(Role).filter(Role.id.in_(role_ids)).all()
        db.add(user)
        db.commit()
        return user.id
    finally:
        db.close()


def make_book(author_id, title="Dune", isbn="9780441013593", quantity=1, is_valid=True):
    db = TestingSessionLocal()
    try:
        book = Book(title=title, isbn=isbn, quantity=quantity, resume="A desert planet.",
                    author_id=author_id, is_valid=is_valid)
        db.add(book)
        db.commit()
        return book.id
    finally:
        db.close()


@pytest.fixture
def admin_headers():
    return auth_headers(login(ADMIN_EMAIL, ADMIN_PASSWORD))


@pytest.fixture
def author():
    user_id = make_user("author@stone.com", [2])
    return {"id": user_id, "headers": auth_headers(login("author@stone.com"))}


@pytest.fixture
def reader():
    user_id = make_user("reader@stone.com", [3])
    return {"id": user_id, "headers": auth_headers(login("reader@stone.com"))}
