"""
Tests for the web views through the Flask test client.
"""

from decimal import Decimal

from sqlalchemy.exc import OperationalError

from conftest import login
from models import InventoryItem, SaleRecord, db


def test_pos_is_open_without_login(client, stocked):
    response = client.get('/')
    assert response.status_code == 200
    body = response.get_data(as_text=True)
    assert 'Mango' in body
    assert 'Milk-Based' in body


def test_pos_search(client, stocked):
    body = client.get('/?q=water').get_data(as_text=True)
    assert 'Search Results (1 items)' in body


def test_sell_through_the_till(client, app, stocked):
    mango = stocked['Mango']
    client.post(f'/cart/add/{mango}')
    client.post(f'/cart/update/{mango}', data={'quantity': '3'})

    response = client.post('/checkout')
    assert response.status_code == 302
    assert response.headers['Location'].endswith('/receipt')

    receipt = client.get('/receipt').get_data(as_text=True)
    assert '157.50' in receipt
    assert 'window.print()' in receipt

    with app.app_context():
        assert db.session.get(InventoryItem, mango).stock_quantity == 7
        (sale,) = SaleRecord.query.all()
        assert sale.total_revenue == Decimal('150')
    with client.session_transaction() as session:
        assert session['cart'] == []


def test_out_of_stock_add_is_flashed(client, stocked):
    response = client.post(f'/cart/add/{stocked["Malai"]}', follow_redirects=True)
    assert 'Item out of stock!' in response.get_data(as_text=True)
    with client.session_transaction() as session:
        assert not session.get('cart')


def test_quantity_over_stock_is_flashed(client, stocked):
    melon = stocked['Watermelon']
    client.post(f'/cart/add/{melon}')
    response = client.post(f'/cart/update/{melon}', data={'quantity': '3'}, follow_redirects=True)
    assert 'Insufficient stock!' in response.get_data(as_text=True)
    with client.session_transaction() as session:
        assert session['cart'][0]['quantity'] == 1


def test_remove_and_empty_checkout(client, app, stocked):
    mango = stocked['Mango']
    client.post(f'/cart/add/{mango}')
    client.post(f'/cart/remove/{mango}')
    response = client.post('/checkout', follow_redirects=True)
    assert 'Cart is empty!' in response.get_data(as_text=True)
    with app.app_context():
        assert SaleRecord.query.count() == 0


def test_admin_requires_login(client):
    response = client.get('/admin')
    assert response.status_code == 302
    assert '/login' in response.headers['Location']


def test_login_with_bad_password(client, admin_user):
    response = login(client, 'admin@nostic.com', 'nope')
    assert response.status_code == 401
    assert 'Invalid email or password' in response.get_data(as_text=True)


def test_manager_cannot_sign_in_as_admin(client, manager_user):
    response = login(client, 'manager@nostic.com', 'secret-manager', role='admin')
    assert response.status_code == 403
    assert client.get('/manager').status_code == 302


def test_manager_gets_403_on_admin(client, manager_user):
    response = login(client, 'manager@nostic.com', 'secret-manager', role='manager')
    assert response.headers['Location'].endswith('/manager')
    assert client.get('/admin').status_code == 403
    assert client.post('/admin/items', data={'name': 'x'}).status_code == 403


def test_admin_dashboard_tabs(client, admin_user, stocked):
    login(client, 'admin@nostic.com', 'secret-admin')
    client.post(f'/cart/add/{stocked["Mango"]}')
    client.post('/checkout')

    sales = client.get('/admin?tab=sales&range=today').get_data(as_text=True)
    assert 'Total Revenue: &#8377;50.00' in sales
    assert 'Margin: 30.0%' in sales

    inventory = client.get('/admin?tab=inventory').get_data(as_text=True)
    assert '2 low' in inventory

    analytics = client.get('/admin?tab=analytics').get_data(as_text=True)
    assert 'order 48 units' in analytics


def test_admin_custom_range_with_bad_date(client, admin_user):
    login(client, 'admin@nostic.com', 'secret-admin')
    response = client.get('/admin?range=custom&start=yesterday&end=2024-01-01')
    assert response.status_code == 200
    assert 'Not a valid date' in response.get_data(as_text=True)


def test_admin_adds_and_edits_item(client, app, admin_user):
    login(client, 'admin@nostic.com', 'secret-admin')
    response = client.post('/admin/items', data={
        'name': 'Gelato Cup', 'flavor': 'Hazelnut', 'category': 'Premium',
        'selling_price': '100', 'quantity': '6',
    }, follow_redirects=True)
    assert 'Item added successfully!' in response.get_data(as_text=True)

    with app.app_context():
        item = InventoryItem.query.filter_by(flavor='Hazelnut').one()
        item_id = item.id
        assert item.cost_price == Decimal('70')

    response = client.post(f'/admin/items/{item_id}/edit', data={
        'name': 'Gelato Cup', 'flavor': 'Hazelnut', 'category': 'Premium',
        'selling_price': '0', 'stock_quantity': '6', 'reorder_level': '3',
    })
    assert 'Selling price must be greater than 0' in response.get_data(as_text=True)

    client.post(f'/admin/items/{item_id}/edit', data={
        'name': 'Gelato Cup', 'flavor': 'Hazelnut', 'category': 'Premium',
        'selling_price': '120', 'stock_quantity': '9', 'reorder_level': '3',
    })
    client.post(f'/admin/items/{item_id}/stock', data={'stock_quantity': '15'})
    client.post(f'/admin/items/{item_id}/price', data={'selling_price': '110'})

    with app.app_context():
        item = db.session.get(InventoryItem, item_id)
        assert (item.stock_quantity, item.reorder_level) == (15, 3)
        assert item.selling_price == Decimal('110')
        assert item.cost_price == Decimal('77')


def test_manager_summary_json(client, manager_user, stocked):
    client.post(f'/cart/add/{stocked["Mango"]}')
    client.post(f'/cart/add/{stocked["Mango"]}')
    client.post('/checkout')

    login(client, 'manager@nostic.com', 'secret-manager', role='manager')
    data = client.get('/manager/summary.json').get_json()
    assert Decimal(data['totalRevenue']) == Decimal('100')
    assert Decimal(data['totalProfit']) == Decimal('30')
    assert data['totalItems'] == 2
    assert data['profitMargin'] == '30.0'

    page = client.get('/manager').get_data(as_text=True)
    assert '100.00' in page


def test_logout_revokes_session(client, admin_user):
    login(client, 'admin@nostic.com', 'secret-admin')
    assert client.get('/admin').status_code == 200
    client.get('/logout')
    assert client.get('/admin').status_code == 302


def failing_commit():
    raise OperationalError('COMMIT', {}, Exception('database is locked'))


def test_login_database_failure_shows_generic_message(client, admin_user, monkeypatch):
    monkeypatch.setattr(db.session, 'commit', failing_commit)
    response = login(client, 'admin@nostic.com', 'secret-admin')
    monkeypatch.undo()
    body = response.get_data(as_text=True)
    assert response.status_code == 401
    assert 'Login failed. Please try again.' in body
    assert 'Invalid email or password' not in body


def test_add_item_database_failure_is_flashed(client, app, admin_user, monkeypatch):
    login(client, 'admin@nostic.com', 'secret-admin')
    monkeypatch.setattr(db.session, 'commit', failing_commit)
    response = client.post('/admin/items', data={
        'name': 'Gelato Cup', 'flavor': 'Hazelnut', 'category': 'Premium',
        'selling_price': '100', 'quantity': '6',
    }, follow_redirects=True)
    monkeypatch.undo()
    assert 'Failed to add item' in response.get_data(as_text=True)
    with app.app_context():
        assert InventoryItem.query.count() == 0
