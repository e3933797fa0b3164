# tests/conftest.py
import pytest
from faker import Faker
from httpx import ASGITransport, AsyncClient

from qurbani.config.settings import Settings
from qurbani.infrastructure.db.session import create_engine_and_sessionmaker, init_models
from qurbani.main import create_app
from qurbani.repositories.donation_repos import transaction
from qurbani.services import donation_service

FAKE = Faker()


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        ENV="test",
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'qurbani_test.db'}",
        CREATE_TABLES_ON_STARTUP=False,
        bot_token=None,
        telegram_chat_id=None,
    )


@pytest.fixture
async def session_factory(test_settings):
    engine, factory = create_engine_and_sessionmaker(test_settings)
    await init_models(engine)
    yield factory
    await engine.dispose()


@pytest.fixture
async def app(test_settings, session_factory):
    # ASGITransport does not run the lifespan, so wire the store in directly
    application = create_app(test_settings)
    application.state.session_factory = session_factory
    return application


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def donor_id(session_factory):
    async with transaction(session_factory) as store:
        donor = await store.create_donor(FAKE.first_name(), FAKE.last_name(), FAKE.msisdn())
        return donor.id


@pytest.fixture
def add_donation(session_factory, donor_id):
    """Create a donation through the service (cow donations get grouped) and return its id."""
    async def _add(type: str = "sheep", price: float = 250.0) -> int:
        donation = await donation_service.create_donation(session_factory, donor_id, price, type)
        return donation["id"]

    return _add
