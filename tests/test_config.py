"""Tests for settings loading."""

import json

import pytest

from proconnect_rp import config
from proconnect_rp.config import get_aws_secret, get_settings
from tests.support import CLIENT_ID, ISSUER, make_settings


@pytest.fixture
def env(monkeypatch):
    get_settings.cache_clear()
    monkeypatch.setenv("ISSUER", ISSUER)
    monkeypatch.setenv("CLIENT_ID", CLIENT_ID)
    monkeypatch.delenv("CLIENT_SECRET", raising=False)
    monkeypatch.delenv("AWS_SECRET_NAME", raising=False)
    yield monkeypatch
    get_settings.cache_clear()


def test_derived_urls():
    settings = make_settings(host="https://rp.example.com/", issuer="https://idp.example.com/")

    assert settings.redirect_uri == "https://rp.example.com/login-callback"
    assert settings.post_logout_redirect_uri == "https://rp.example.com/"
    assert settings.discovery_url == "https://idp.example.com/.well-known/openid-configuration"
    assert settings.issuer == "https://idp.example.com/"


def test_environment(env):
    env.setenv("ACR_VALUES", "eidas1, eidas2")
    env.setenv("MFA_AMR_VALUES", "otp")
    env.setenv("STEP_UP_ACR_VALUES", '{"force-2fa": ["eidas2"]}')
    env.setenv("USE_PKCE", "true")

    settings = get_settings()

    assert settings.acr_values == ["eidas1", "eidas2"]
    assert settings.mfa_amr_values == ["otp"]
    assert settings.step_up_acr_values == {"force-2fa": ["eidas2"]}
    assert settings.use_pkce
    assert not settings.allow_insecure_requests
    assert get_settings() is settings


def test_client_secret_from_aws(env):
    calls = []

    def fake_secret(secret_name, key, region_name):
        calls.append((secret_name, key, region_name))
        return "from-aws"

    env.setenv("AWS_SECRET_NAME", "proconnect/rp")
    env.setattr(config, "get_aws_secret", fake_secret)

    settings = get_settings()

    assert settings.client_secret == "from-aws"
    assert calls == [("proconnect/rp", "client_secret", "eu-west-3")]


def test_explicit_client_secret_wins(env):
    env.setenv("CLIENT_SECRET", "local")
    env.setenv("AWS_SECRET_NAME", "proconnect/rp")
    env.setattr(config, "get_aws_secret", pytest.fail)

    assert get_settings().client_secret == "local"


def test_get_aws_secret(monkeypatch):
    class FakeClient:
        def get_secret_value(self, SecretId):
            assert SecretId == "proconnect/rp"
            return {"SecretString": json.dumps({"client_secret": "s3cret"})}

    class FakeSession:
        def client(self, service_name, region_name):
            assert service_name == "secretsmanager"
            return FakeClient()

    monkeypatch.setattr(config.boto3.session, "Session", FakeSession)

    assert get_aws_secret("proconnect/rp", "client_secret", "eu-west-3") == "s3cret"
