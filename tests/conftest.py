# tests/conftest.py
import pytest

from app.services.approval_policy import AllOrNothingPolicy, LineItemPolicy
from tests.fakes import InMemoryUnitOfWork


@pytest.fixture
def uow() -> InMemoryUnitOfWork:
    return InMemoryUnitOfWork()


@pytest.fixture
def all_or_nothing() -> AllOrNothingPolicy:
    return AllOrNothingPolicy()


@pytest.fixture
def line_item() -> LineItemPolicy:
    return LineItemPolicy()
