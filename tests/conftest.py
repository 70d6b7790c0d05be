import pytest

from tests.factories import Env


@pytest.fixture()
def env() -> Env:
    return Env()
