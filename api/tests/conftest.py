import os
import sys

# Ensure api/ is on sys.path so imports like "services.*" work in tests.
API_DIR = os.path.dirname(os.path.dirname(__file__))
if API_DIR not in sys.path:
    sys.path.insert(0, API_DIR)

import pytest

from app import create_app
from clients.mls_client import MLSClient
from container import build_services
from storage.local_store import LocalTableFactory

from fakes import FakeSession, FakeStripe, provider_configs


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def fake_stripe():
    return FakeStripe()


@pytest.fixture
def services(session, fake_stripe):
    return build_services(
        table_factory=LocalTableFactory(),
        session=session,
        provider_configs=provider_configs(),
        encryption_key="test-encryption-secret",
        stripe_module=fake_stripe,
        stripe_api_key="sk_test_123",
        stripe_webhook_secret="whsec_test",
        mls_client=MLSClient(api_key="mls-key", host="mls.example", session=session),
        openai_client=None,
    )


@pytest.fixture
def app(services):
    app = create_app(services)
    app.config.update(TESTING=True)
    return app


@pytest.fixture
def client(app):
    return app.test_client()
