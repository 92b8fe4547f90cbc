import pytest

from proconnect_rp.auth.discovery import MetadataResolver
from proconnect_rp.auth.oidc import RelyingParty
from proconnect_rp.auth.tokens import TokenClient
from tests.support import FakeProvider, make_settings


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def resolver(settings, provider):
    return MetadataResolver(settings, transport=provider.transport)


@pytest.fixture
def token_client(settings, resolver, provider):
    return TokenClient(settings, resolver, transport=provider.transport)


@pytest.fixture
def relying_party(settings, provider):
    return RelyingParty(settings, transport=provider.transport)
