import sys
from decimal import Decimal
from pathlib import Path

import pytest

# the app modules live at the project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app import create_app  # noqa: E402
from auth import create_user  # noqa: E402
from config import TestingConfig  # noqa: E402
from models import InventoryItem, db  # noqa: E402


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    """Push an app context for tests that call the store directly."""
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_user(app):
    with app.app_context():
        user = create_user('admin@nostic.com', 'secret-admin', 'admin')
        return user.id


@pytest.fixture
def manager_user(app):
    with app.app_context():
        user = create_user('manager@nostic.com', 'secret-manager', 'manager')
        return user.id


def add_item(flavor, price, stock, reorder_level=10, category='Popsicles', name='Ice Pop'):
    item = InventoryItem(name=name, flavor=flavor, category=category,
                         selling_price=Decimal(price), stock_quantity=stock,
                         reorder_level=reorder_level)
    db.session.add(item)
    db.session.commit()
    return item


@pytest.fixture
def stocked(app):
    """Three items; returns their ids as a dict keyed by flavor."""
    with app.app_context():
        items = [
            add_item('Mango', '50', 10, reorder_level=5),
            add_item('Watermelon', '20', 2, reorder_level=10),
            add_item('Malai', '40', 0, category='Milk-Based', name='Kulfi'),
        ]
        return {item.flavor: item.id for item in items}


def login(client, email, password, role='admin'):
    return client.post('/login', data={'email': email, 'password': password, 'role': role})
