from decimal import Decimal

import pytest

from app import create_app, seed_essential_data
from config import Config
from models import db, BusinessProfile, Client, Product


@pytest.fixture
def app(tmp_path):
    class TestConfig(Config):
        TESTING = True
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'omniinvoice_test.db'}"
        SQLALCHEMY_ENGINE_OPTIONS = {}
        RATELIMIT_ENABLED = False
        RATELIMIT_STORAGE_URI = 'memory://'
        CACHE_TYPE = 'NullCache'
        SMTP_HOST = None
        SMTP_USER = None
        SMTP_PASS = None

    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
    seed_essential_data(app)

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def make_client(app):
    def _make(name='Acme Traders', **kwargs):
        with app.app_context():
            c = Client(name=name, **kwargs)
            db.session.add(c)
            db.session.commit()
            return c.id
    return _make


@pytest.fixture
def make_product(app):
    def _make(name='Widget', stock=10, track=True, rate='100.00', threshold=5, **kwargs):
        with app.app_context():
            p = Product(
                name=name,
                track_inventory=track,
                stock_level=Decimal(str(stock)),
                default_rate=Decimal(str(rate)),
                low_stock_threshold=Decimal(str(threshold)),
                **kwargs
            )
            db.session.add(p)
            db.session.commit()
            return p.id
    return _make


@pytest.fixture
def set_auto_deduct(app):
    def _set(enabled):
        with app.app_context():
            profile = BusinessProfile.query.first()
            profile.auto_deduct_inventory = enabled
            db.session.commit()
    return _set
