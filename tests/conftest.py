import pytest

from configurate.conf import ConfigurateSettings
from configurate.keyring_store import MemorySecretStore
from configurate.models import SecretOptions


@pytest.fixture
def store():
    """Fresh in-memory secret store."""
    return MemorySecretStore()


@pytest.fixture
def secret_options():
    """Secret store namespace used across tests."""
    return SecretOptions(service="app", account="default")


@pytest.fixture
def settings():
    """Settings independent of the process environment."""
    return ConfigurateSettings()
