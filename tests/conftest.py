import pytest

from baozi_codec.config import DEFAULT_CONFIG

from .factories import NOW, key


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def user():
    return key(1)


@pytest.fixture
def creator():
    return key(2)


@pytest.fixture
def market_key():
    return key(3)


@pytest.fixture
def config():
    return DEFAULT_CONFIG
