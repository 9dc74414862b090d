# app.py - handles system logic and routing
# run this file starting the server: python app.py

import logging
from decimal import ROUND_HALF_UP, Decimal

from flask import (Blueprint, Flask, current_app, flash, jsonify, redirect,
                   render_template, request, session, url_for)
from flask_login import current_user, login_user, logout_user

import reports
import store
from auth import can_open, create_user, login_manager, role_required, sign_in, sign_out
from cart import Cart, Receipt, checkout
from config import DevelopmentConfig
from errors import AuthError, CartRejection, CheckoutError, PosError, StoreError, ValidationError
from logging_config import configure_logging
from models import InventoryItem, User, db
from poller import SummaryPoller

logger = logging.getLogger(__name__)

bp = Blueprint('main', __name__)

SAMPLE_STOCK = [
    ('Ice Pop', 'Watermelon', 'Popsicles', '20', 40),
    ('Ice Pop', 'Mango', 'Popsicles', '20', 35),
    ('Ice Pop', 'Kala Khatta', 'Popsicles', '25', 8),
    ('Kulfi', 'Malai', 'Milk-Based', '40', 25),
    ('Kulfi', 'Pista', 'Milk-Based', '45', 12),
    ('Gelato Cup', 'Belgian Chocolate', 'Premium', '90', 6),
]


def money(value):
    # all sums stay exact until they are shown
    if value is None:
        value = 0
    return str(Decimal(str(value)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))


def create_app(config_object=DevelopmentConfig):
    app = Flask(__name__)
    app.config.from_object(config_object)
    configure_logging(app.config['LOG_LEVEL'])

    db.init_app(app)
    login_manager.init_app(app)
    app.register_blueprint(bp)
    app.jinja_env.filters['money'] = money

    # setup database and default data
    with app.app_context():
        db.create_all()
        if app.config['SEED_DEFAULTS']:
            seed_defaults()

    poller = SummaryPoller(app, interval=app.config['MANAGER_POLL_SECONDS'])
    app.extensions['summary_poller'] = poller
    if app.config['SUMMARY_POLLER_ENABLED']:
        poller.start()
    return app


def seed_defaults():
    config = current_app.config
    for email, password, role in ((config['ADMIN_EMAIL'], config['ADMIN_PASSWORD'], 'admin'),
                                  (config['MANAGER_EMAIL'], config['MANAGER_PASSWORD'], 'manager')):
        if not User.query.filter_by(email=email).first():
            create_user(email, password, role)
            logger.info('created default %s account %s', role, email)

    # starter stock for the shop
    if InventoryItem.query.count() == 0:
        for name, flavor, category, price, stock in SAMPLE_STOCK:
            db.session.add(InventoryItem(name=name, flavor=flavor, category=category,
                                         selling_price=Decimal(price), stock_quantity=stock,
                                         reorder_level=config['DEFAULT_REORDER_LEVEL']))
        db.session.commit()


def _load_cart():
    return Cart.from_session(session.get('cart'))


def _save_cart(cart):
    session['cart'] = cart.to_session()


def _group_by_category(items):
    known = list(current_app.config['CATEGORIES'])
    groups = {category: [] for category in known}
    for item in items:
        groups.setdefault(item.category, []).append(item)
    return groups


def _home_for(user):
    if user.is_authenticated and user.is_admin:
        return url_for('main.admin')
    if user.is_authenticated:
        return url_for('main.manager')
    return url_for('main.pos')


# login and logout
@bp.route('/login', methods=['GET', 'POST'])
def login():
    if current_user.is_authenticated:
        return redirect(_home_for(current_user))
    if request.method == 'POST':
        wanted = request.form.get('role', 'admin')
        try:
            user = sign_in(request.form.get('email'), request.form.get('password'))
        except AuthError as exc:
            flash(exc.message, 'danger')
            return render_template('login.html', role=wanted), 401

        # the dashboard picked on the form must match the stored role
        if not can_open(user, wanted):
            sign_out(user.session_token)
            flash(f'This account cannot open the {wanted} dashboard.', 'danger')
            return render_template('login.html', role=wanted), 403

        login_user(user)
        return redirect(url_for('main.admin') if wanted == 'admin' else url_for('main.manager'))
    return render_template('login.html', role=request.args.get('role', 'admin'))


@bp.route('/logout')
def logout():
    if current_user.is_authenticated:
        try:
            sign_out(current_user.session_token)
        except AuthError as exc:
            flash(exc.message, 'warning')
        logout_user()
    return redirect(url_for('main.pos'))


# point of sale - open to the cashier without a login
@bp.route('/')
def pos():
    term = request.args.get('q', '').strip()
    try:
        items = store.search_inventory(term)
    except StoreError:
        flash('Failed to load inventory', 'danger')
        items = []
    cart = _load_cart()
    return render_template('pos.html', items=items, groups=_group_by_category(items),
                           term=term, cart=cart, totals=cart.totals())


def _back_to_pos():
    return redirect(url_for('main.pos', q=request.form.get('q') or None))


@bp.route('/cart/add/<int:item_id>', methods=['POST'])
def cart_add(item_id):
    cart = _load_cart()
    try:
        item = store.get_item(item_id)
        if item is None:
            flash('Item not found.', 'danger')
            return _back_to_pos()
        cart.add(item)
        _save_cart(cart)
    except PosError as exc:
        flash(exc.message, 'danger')
    return _back_to_pos()


@bp.route('/cart/update/<int:item_id>', methods=['POST'])
def cart_update(item_id):
    cart = _load_cart()
    try:
        quantity = int(request.form.get('quantity', ''))
    except ValueError:
        flash('Invalid quantity entered.', 'danger')
        return _back_to_pos()
    try:
        item = store.get_item(item_id) if quantity > 0 else None
        cart.update_quantity(item_id, quantity, item=item)
        _save_cart(cart)
    except PosError as exc:
        flash(exc.message, 'danger')
    return _back_to_pos()


@bp.route('/cart/remove/<int:item_id>', methods=['POST'])
def cart_remove(item_id):
    cart = _load_cart()
    cart.remove(item_id)
    _save_cart(cart)
    return _back_to_pos()


@bp.route('/checkout', methods=['POST'])
def checkout_cart():
    cart = _load_cart()
    try:
        receipt = checkout(cart, tax_rate=current_app.config['TAX_RATE'])
    except (CartRejection, CheckoutError) as exc:
        flash(exc.message, 'danger')
        return redirect(url_for('main.pos'))
    _save_cart(cart)
    session['receipt'] = receipt.to_session()
    return redirect(url_for('main.receipt'))


@bp.route('/receipt')
def receipt():
    data = session.get('receipt')
    if not data:
        return redirect(url_for('main.pos'))
    return render_template('receipt.html',
                           receipt=Receipt.from_session(data, current_app.config['TAX_RATE']))


# admin dashboard - sales, inventory and analytics tabs
@bp.route('/admin')
@role_required('admin')
def admin():
    tab = request.args.get('tab', 'sales')
    window = request.args.get('range', 'today')
    week_start = current_app.config['WEEK_START']
    context = dict(tab=tab, window=window, windows=reports.WINDOWS,
                   start=request.args.get('start', ''), end=request.args.get('end', ''),
                   stats=reports.SalesStats(), top=[], inventory=[], restock=[], low_count=0,
                   categories=current_app.config['CATEGORIES'])
    try:
        start = reports.parse_day(context['start'])
        end = reports.parse_day(context['end'])
        context['stats'] = reports.sales_stats(window, start=start, end=end, week_start=week_start)
        context['top'] = reports.top_items(window, limit=current_app.config['TOP_ITEMS_LIMIT'],
                                           start=start, end=end, week_start=week_start)
        inventory = store.fetch_inventory()
        context['inventory'] = inventory
        context['restock'] = reports.restock_recommendations(
            inventory, current_app.config['RESTOCK_MULTIPLIER'])
        context['low_count'] = sum(1 for item in inventory if reports.is_low_stock(item))
    except ValidationError as exc:
        flash(exc.message, 'danger')
    except StoreError:
        flash('Failed to load data', 'danger')
    return render_template('admin.html', **context)


@bp.route('/admin/items', methods=['POST'])
@role_required('admin')
def add_item():
    form = request.form
    try:
        store.add_inventory_item(
            current_user,
            form.get('name'), form.get('flavor'), form.get('category'),
            form.get('selling_price'), form.get('quantity'),
            form.get('reorder_level') or current_app.config['DEFAULT_REORDER_LEVEL'],
        )
        flash('Item added successfully!', 'success')
    except ValidationError as exc:
        flash(exc.message, 'danger')
    except StoreError:
        flash('Failed to add item', 'danger')
    return redirect(url_for('main.admin', tab='inventory'))


@bp.route('/admin/items/<int:item_id>/edit', methods=['GET', 'POST'])
@role_required('admin')
def edit_item(item_id):
    try:
        item = store.get_item(item_id)
    except StoreError:
        item = None
    if item is None:
        flash('Item not found.', 'danger')
        return redirect(url_for('main.admin', tab='inventory'))

    if request.method == 'POST':
        form = request.form
        try:
            store.update_inventory_item(
                current_user, item_id,
                form.get('name'), form.get('flavor'), form.get('category'),
                form.get('selling_price'), form.get('stock_quantity'), form.get('reorder_level'),
            )
            flash('Item updated successfully!', 'success')
            return redirect(url_for('main.admin', tab='inventory'))
        except ValidationError as exc:
            flash(exc.message, 'danger')
        except StoreError:
            flash('Failed to update item', 'danger')
    return render_template('edit_item.html', item=item,
                           categories=current_app.config['CATEGORIES'],
                           cost_ratio=current_app.config['COST_RATIO'])


@bp.route('/admin/items/<int:item_id>/price', methods=['POST'])
@role_required('admin')
def update_price(item_id):
    try:
        item = store.update_item_price(current_user, item_id, request.form.get('selling_price'))
        flash(f'Price saved for {item.flavor}', 'success')
    except ValidationError as exc:
        flash(exc.message, 'danger')
    except StoreError:
        flash('Failed to update price', 'danger')
    return redirect(url_for('main.admin', tab='inventory'))


# restock from the analytics tab: set the counted stock after a delivery
@bp.route('/admin/items/<int:item_id>/stock', methods=['POST'])
@role_required('admin')
def update_stock(item_id):
    try:
        item = store.update_inventory_stock(current_user, item_id, request.form.get('stock_quantity'))
        flash(f'Stock for {item.flavor} is now {item.stock_quantity}', 'success')
    except ValidationError as exc:
        flash(exc.message, 'danger')
    except StoreError:
        flash('Failed to update stock', 'danger')
    return redirect(url_for('main.admin', tab='analytics'))


# manager summary - today's totals only
def _today_summary():
    poller = current_app.extensions.get('summary_poller')
    if poller is not None and poller.running and poller.latest is not None:
        return poller.latest
    return reports.sales_stats('today', week_start=current_app.config['WEEK_START'])


@bp.route('/manager')
@role_required('manager', 'admin')
def manager():
    try:
        stats = _today_summary()
    except StoreError:
        flash('Failed to load sales', 'danger')
        stats = reports.SalesStats()
    return render_template('manager.html', stats=stats,
                           poll_seconds=current_app.config['MANAGER_POLL_SECONDS'])


@bp.route('/manager/summary.json')
@role_required('manager', 'admin')
def manager_summary():
    try:
        stats = _today_summary()
    except StoreError:
        return jsonify(error='Failed to load sales'), 503
    return jsonify(stats.as_dict())


if __name__ == '__main__':
    create_app().run(debug=True, port=5001)
