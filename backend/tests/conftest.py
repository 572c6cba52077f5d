"""Shared fixtures: a temporary SQLite store, a fake cloud and a wired container."""
import os

from cryptography.fernet import Fernet

os.environ.setdefault("ENCRYPTION_KEY", Fernet.generate_key().decode())

import pytest
from httpx import ASGITransport, AsyncClient

from fakes import FakeCloud
from kubeforge.config import Settings
from kubeforge.container import Container, get_container, set_container
from kubeforge.database import build_session_factory, init_db
from kubeforge.utils.crypto import CryptoService


async def no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def test_settings():
    return Settings(
        ENCRYPTION_KEY=os.environ["ENCRYPTION_KEY"],
        PUBLIC_NETWORK_ID="public-net",
        IMAGE_REF="image-1",
        CLOUDFLARE_DOMAIN="k8s.test",
        KUBECONFIG_WAIT_ATTEMPTS=2,
        SHUTDOWN_GRACE_SECONDS=1,
    )


@pytest.fixture
async def session_factory(tmp_path):
    engine, factory = build_session_factory(f"sqlite+aiosqlite:///{tmp_path}/test.db")
    await init_db(engine)
    yield factory
    await engine.dispose()


@pytest.fixture
def cloud():
    return FakeCloud()


@pytest.fixture
def container(test_settings, session_factory, cloud):
    container = Container(
        test_settings, session_factory, cloud.clients(), CryptoService(test_settings.ENCRYPTION_KEY), sleep=no_sleep
    )
    set_container(container)
    yield container
    set_container(None)


@pytest.fixture
async def client(container):
    """HTTP client for API testing"""
    from kubeforge.main import create_app

    app = create_app()
    app.dependency_overrides[get_container] = lambda: container
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    await container.runner.shutdown(1)
