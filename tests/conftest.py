import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ENCRYPTION_KEY"] = "ZmDfcTF7_60GrrY167zsiPd67pEvs0aGOv2oasOM1Pg="
os.environ["SCHEDULER_AUTOSTART"] = "false"
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from app.main import app
from app.database import Base, SessionLocal
from app.models.credential import BatchOAuthToken, OAuthToken
from app.models.store import Store
from app.services.scheduler_log import SchedulerLogService
from app.utils.clock import utc_now
from app.utils.encrypt import encrypt_token

# One shared in-memory connection so request handlers, the scheduler and
# the test body all see the same data
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
SessionLocal.configure(bind=engine)

SITE = "S2024test"
UNIT = "u2024test"


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db() -> Session:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def auth_headers(client: TestClient) -> dict:
    response = client.post("/token", data={"username": "admin", "password": "changeme"})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def store(db: Session) -> Store:
    store = Store(site_code=SITE, unit_code=UNIT, site_name="Test shop", is_active=True)
    db.add(store)
    db.commit()
    return store


def save_token(db: Session, model, access_token: str, expires_in: timedelta = timedelta(hours=1),
               refresh_token: str = "refresh-1", site_code: str = SITE):
    now = utc_now()
    token = db.query(model).filter(model.site_code == site_code).first()
    if token is None:
        token = model(site_code=site_code)
        db.add(token)
    token.access_token = encrypt_token(access_token)
    token.refresh_token = encrypt_token(refresh_token) if refresh_token else None
    token.token_type = "Bearer"
    token.expires_at = now + expires_in
    token.refresh_token_expires_at = now + timedelta(days=30)
    token.issued_at = now
    db.commit()
    return token


@pytest.fixture
def interactive_token(db: Session) -> OAuthToken:
    return save_token(db, OAuthToken, "interactive-access")


@pytest.fixture
def batch_token(db: Session) -> BatchOAuthToken:
    return save_token(db, BatchOAuthToken, "batch-access")


@pytest.fixture
def activity() -> SchedulerLogService:
    return SchedulerLogService(max_size=200)


async def no_sleep(_seconds):
    return None
