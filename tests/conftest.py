import pytest
from fastapi.testclient import TestClient
from jose import jwt

from dal.message_dal import MessageDAL
from dal.session_dal import SessionDAL
from main import create_app
from services.message_store import MessageStore
from services.moderation_engine import ModerationEngine
from services.realtime.broadcaster import InMemoryBroadcaster
from services.session_manager import SessionManager
from utils.database_init import AsyncDatabaseInitializer
from utils.settings import Settings

JWT_SECRET = "test-secret"


def moderator_token(sub: str = "mod1", role: str = "admin") -> str:
    return jwt.encode({"sub": sub, "role": role}, JWT_SECRET, algorithm="HS256")


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def db_initializer(tmp_path):
    return AsyncDatabaseInitializer(tmp_path)


@pytest.fixture
def session_dal(db_initializer):
    return SessionDAL(db_initializer)


@pytest.fixture
def session_manager(session_dal):
    return SessionManager(session_dal, idle_timeout_seconds=3_600)


@pytest.fixture
def message_store(db_initializer, session_manager):
    return MessageStore(MessageDAL(db_initializer), session_manager, max_message_length=200)


@pytest.fixture
def broadcaster():
    return InMemoryBroadcaster()


@pytest.fixture
def engine(message_store, session_manager, broadcaster):
    return ModerationEngine(message_store, session_manager, broadcaster, retry_delay=0)


@pytest.fixture(scope="function")
def client(tmp_path):
    settings = Settings(database_dir=tmp_path, moderator_jwt_secret=JWT_SECRET, log_level="WARNING")
    with TestClient(create_app(settings)) as test_client:
        yield test_client
