import httpx
import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from backend.config import Settings
from backend.donation_store import DonationStore
from backend.donations import DonationService
from backend.gateway import NowPaymentsClient
from backend.reporting import DonationReporter
from backend.server import create_app

IPN_SECRET = "ipn-test-secret"
WALLET = "TDemoWalletAddress000000000000000"
GATEWAY_URL = "https://gateway.test/v1"


@pytest.fixture
def settings():
    return Settings(
        environment="test",
        log_level="INFO",
        nowpayments_api_url=GATEWAY_URL,
        nowpayments_api_key="test-api-key",
        nowpayments_ipn_secret=IPN_SECRET,
        donation_wallet_address=WALLET,
        donation_mode="demo",
        ipn_require_signature=False,
    )


@pytest.fixture
def live_settings(settings):
    return settings.model_copy(update={"donation_mode": "live", "ipn_require_signature": True})


@pytest.fixture
def db():
    return AsyncMongoMockClient()["worldcup_test"]


@pytest.fixture
def store(db):
    return DonationStore(db)


@pytest.fixture
def service(settings, store):
    return DonationService(settings, store)


@pytest.fixture
def reporter(store):
    return DonationReporter(store)


@pytest.fixture
def gateway_factory():
    """Build a NOWPayments client whose HTTP calls are answered by ``handler``."""
    def make(handler):
        return NowPaymentsClient(GATEWAY_URL, "test-api-key", timeout=5, transport=httpx.MockTransport(handler))
    return make


@pytest.fixture
def api_client(settings, db):
    with TestClient(create_app(settings, db=db)) as c:
        yield c
