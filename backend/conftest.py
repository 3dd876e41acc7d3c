import pytest

from payments.services.gateway import get_intent_client


@pytest.fixture(autouse=True)
def fresh_intent_client():
    get_intent_client.cache_clear()
    yield
    get_intent_client.cache_clear()
