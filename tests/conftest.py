"""Shared fixtures: a temporary database, the Flask app and a FileStore."""

import pytest

from pydownloads.main import create_app
from pydownloads.settings import DEFAULT_SETTINGS
from pydownloads.store import FileStore, connect

STORAGE_URL = 'https://storage.example.com'


@pytest.fixture
def settings():
    settings = dict(DEFAULT_SETTINGS)
    settings['storage_public_url'] = STORAGE_URL
    return settings


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / 'downloads.db'


@pytest.fixture
def app(settings, db_path):
    app = create_app(settings=settings, database_path=db_path)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def store(db_path):
    db = connect(db_path)
    store = FileStore(db)
    store.init_schema(DEFAULT_SETTINGS['default_categories'])
    yield store
    db.close()
