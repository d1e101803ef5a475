"""
Shared fixtures for the integrations test-suite.
"""

import pytest

from integrations.encryption import SecretCipher
from integrations.registry import PlatformRegistry
from integrations.state import StateCodec


@pytest.fixture
def cipher():
    return SecretCipher("test-encryption-key")


@pytest.fixture
def codec():
    return StateCodec("test-state-secret")


@pytest.fixture
def registry():
    return PlatformRegistry()
