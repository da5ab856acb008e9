import uuid

import httpx
import pytest
from sqlalchemy.pool import NullPool

import flybook.models  # noqa: F401
from flybook.models import User
from flybook.services.amadeus import AmadeusClient, CredentialManager
from flybook.services.notifications import Notifier
from flybook.utils.database import Base, build_engine, build_session_factory

AMADEUS_BASE_URL = "https://amadeus.test"
TOKEN_URL = f"{AMADEUS_BASE_URL}/v1/security/oauth2/token"


class RecordingNotifier(Notifier):
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send(self, to_address, subject, html_body, text_body):
        if self.fail:
            raise ConnectionError("broker unreachable")
        self.sent.append((to_address, subject, html_body, text_body))


def make_amadeus_client(handler, clock=None, safety_margin=10.0):
    """AmadeusClient whose HTTP traffic is answered by ``handler``"""
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs = {"clock": clock} if clock is not None else {}
    credentials = CredentialManager(
        client_id="client-id",
        client_secret="client-secret",
        token_url=TOKEN_URL,
        http=http,
        safety_margin=safety_margin,
        **kwargs,
    )
    return AmadeusClient(http=http, credentials=credentials, base_url=AMADEUS_BASE_URL)


@pytest.fixture
async def session_factory(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'flybook.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def user(session_factory):
    async with session_factory() as session:
        user = User(id=uuid.uuid4(), email="traveller@example.com", full_name="Asha Rao")
        session.add(user)
        await session.commit()
    return user


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def amadeus_factory():
    return make_amadeus_client


@pytest.fixture
def failing_notifier():
    return RecordingNotifier(fail=True)
