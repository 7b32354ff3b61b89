"""Shared test fixtures."""

import time
import uuid

import httpx
import pytest
import pytest_asyncio
from jose import jwt

from curabot.config import AuthSettings, AutomationSettings, GeneralSettings, Settings, StripeSettings, VoiceSettings
from curabot.storage.db import close_db, configure_engine, get_session, init_db
from curabot.storage.scoped import OwnerScope

JWT_KEY = "test-signing-key"
OWNER = "user_owner"
OTHER_OWNER = "user_other"


def make_token(sub: str = OWNER, key: str = JWT_KEY, **claims) -> str:
    """Sign an HS256 session token like the auth provider would."""
    payload = {"sub": sub, "iat": int(time.time()), "exp": int(time.time()) + 3600, **claims}
    return jwt.encode(payload, key, algorithm="HS256")


def auth_headers(sub: str = OWNER) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(sub)}"}


def make_step(step_id: str = "step-1", analysis_id: str = "analysis-1", **overrides) -> dict:
    """A camelCase step payload as the automation service sends it."""
    step = {
        "id": step_id,
        "analysisId": analysis_id,
        "stepNumber": 1,
        "action": "click",
        "stepStatus": "pending",
        "args": {"selector": "#login"},
        "screenshotPath": "shots/1.png",
        "analysis": {"stepDescription": "Open the login form"},
    }
    step.update(overrides)
    return step


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        general=GeneralSettings(
            db_url=f"sqlite+aiosqlite:///{tmp_path}/test.db",
            screenshots_dir=tmp_path / "screenshots",
        ),
        auth=AuthSettings(jwt_key=JWT_KEY, jwt_algorithms=["HS256"]),
        automation=AutomationSettings(
            api_url="http://automation.test",
            api_key="svc-key",
            ingest_api_key="ingest-key",
            reconnect_delay_seconds=0.0,
        ),
        voice=VoiceSettings(api_key="", phone_number_id=""),
        stripe=StripeSettings(secret_key="sk_test_123", webhook_secret="whsec_test"),
    )


@pytest_asyncio.fixture
async def db(settings):
    """A fresh SQLite database for each test."""
    configure_engine(settings.general.db_url)
    await init_db()
    yield
    await close_db()


@pytest_asyncio.fixture
async def session(db):
    async with get_session() as s:
        yield s


@pytest.fixture
def scope(session) -> OwnerScope:
    return OwnerScope(session, OWNER)


@pytest.fixture
def other_scope(session) -> OwnerScope:
    return OwnerScope(session, OTHER_OWNER)


@pytest_asyncio.fixture
async def client(db, settings):
    """httpx client bound to the ASGI app; the engine is already configured."""
    from curabot.api.app import create_app

    app = create_app(settings)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        c.app = app
        yield c


async def seed_project(owner: str = OWNER, **overrides) -> str:
    """Insert a project in its own committed session and return its id."""
    from curabot.projects.service import create_project

    fields = {"name": "Checkout flow", "url": "https://shop.example", "objective": "Buy a hat"}
    fields.update(overrides)
    async with get_session() as s:
        project = await create_project(OwnerScope(s, owner), **fields)
    return project["id"]


def new_id() -> str:
    return str(uuid.uuid4())
