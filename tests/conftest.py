import pytest

from academy import create_app, db
from academy.config import TestingConfig

from .factories import FakeGateway


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def app(gateway, tmp_path):
    app = create_app(TestingConfig)
    app.config['VIDEO_UPLOAD_FOLDER'] = str(tmp_path / 'videos')
    app.extensions['payment_gateway'] = gateway
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    """App context for tests that call services directly"""
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()
