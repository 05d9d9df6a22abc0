import pytest

from fakes import FakeClient, FakeWallet


@pytest.fixture
def wallet() -> FakeWallet:
    return FakeWallet()


@pytest.fixture
def client() -> FakeClient:
    return FakeClient()
