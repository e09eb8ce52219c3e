"""Shared test fixtures for the taskboard tests."""

import pytest
from werkzeug.security import generate_password_hash

from taskboard.access import OpenAccess, SharedSecretAccess, PerAccountAccess
from taskboard.accounts import AccountStore
from taskboard.config import Config
from taskboard.server import create_app
from taskboard.storage import MemoryStorage, empty_data_snapshot, empty_auth_snapshot
from taskboard.store import KanbanStore

JWT_SECRET = "test-secret"
SHARED_USER = "admin"
SHARED_PASSWORD = "hunter22"


@pytest.fixture
def data_storage():
    return MemoryStorage(empty_data_snapshot())


@pytest.fixture
def store(data_storage):
    return KanbanStore(data_storage)


@pytest.fixture
def accounts():
    return AccountStore(MemoryStorage(empty_auth_snapshot()), JWT_SECRET)


def _client(config, store, access):
    app = create_app(config, store=store, access=access)
    app.config["TESTING"] = True
    return app.test_client()


@pytest.fixture
def open_client(store):
    return _client(Config(mode="open"), store, OpenAccess())


@pytest.fixture
def shared_client(store):
    access = SharedSecretAccess(SHARED_USER, generate_password_hash(SHARED_PASSWORD))
    return _client(Config(mode="shared-secret", password=SHARED_PASSWORD), store, access)


@pytest.fixture
def account_client(store, accounts):
    config = Config(mode="per-account", jwt_secret=JWT_SECRET)
    return _client(config, store, PerAccountAccess(accounts, store))
