"""Shared pytest fixtures for vitalsbot tests."""
import sys
sys.dont_write_bytecode = True

from unittest.mock import AsyncMock  # noqa: E402

import pytest  # noqa: E402

from vitalsbot.google.credential_store import CredentialStore  # noqa: E402
from vitalsbot.google.oauth_registry import OAuthClientRegistry  # noqa: E402
from vitalsbot.whatsapp.meta_sender import MetaSender  # noqa: E402

from .helpers import make_settings  # noqa: E402


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def registry(settings):
    """Fresh OAuth client cache for every test."""
    return OAuthClientRegistry(settings)


@pytest.fixture
def gateway():
    """Outbound WhatsApp gateway with every send mocked."""
    return AsyncMock(spec=MetaSender)


@pytest.fixture
def store():
    """Credential store with every backend call mocked."""
    return AsyncMock(spec=CredentialStore)
