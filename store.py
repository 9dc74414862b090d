# data access for the inventory and sales tables
# database failures are rolled back, logged and raised as StoreError
# inventory writes are admin-only; the role comes from the signed-in user, never the browser

import logging
from collections import namedtuple
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal, InvalidOperation

from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError

from config import Config
from errors import AuthorizationError, InsufficientStock, StoreError, ValidationError
from models import InventoryItem, SaleRecord, db

logger = logging.getLogger(__name__)

# one cart line as it is written to the ledger
SaleLine = namedtuple('SaleLine', 'item_id quantity selling_price cost_price')


@contextmanager
def _store_call(action):
    try:
        yield
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception('store call failed: %s', action)
        raise StoreError(f'Failed to {action}') from exc


def _require_admin(actor):
    if actor is None or not getattr(actor, 'is_admin', False):
        logger.warning('blocked inventory write by %s', getattr(actor, 'email', 'anonymous'))
        raise AuthorizationError('Only an admin can change the inventory.')


# input checks, run before any database call

def parse_price(value):
    try:
        price = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError('Selling price must be a number')
    if not price.is_finite() or price <= 0:
        raise ValidationError('Selling price must be greater than 0')
    return price


def parse_count(value, label):
    try:
        count = int(str(value).strip())
    except ValueError:
        raise ValidationError(f'{label} must be a whole number')
    if count < 0:
        raise ValidationError(f'{label} cannot be negative')
    return count


def _require_text(*values):
    for value in values:
        if not value or not str(value).strip():
            raise ValidationError('Please fill all required fields')


# inventory

def fetch_inventory():
    with _store_call('load inventory'):
        return (InventoryItem.query
                .order_by(InventoryItem.category.asc(), InventoryItem.id.asc())
                .all())


def get_item(item_id):
    with _store_call('load item'):
        return db.session.get(InventoryItem, item_id)


def search_inventory(term):
    term = (term or '').strip()
    if not term:
        return fetch_inventory()
    # plain substring match, so LIKE wildcards in the term are escaped
    escaped = term.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')
    pattern = f'%{escaped}%'
    with _store_call('search inventory'):
        return (InventoryItem.query
                .filter(or_(InventoryItem.flavor.ilike(pattern, escape='\\'),
                            InventoryItem.name.ilike(pattern, escape='\\'),
                            InventoryItem.category.ilike(pattern, escape='\\')))
                .order_by(InventoryItem.category.asc(), InventoryItem.id.asc())
                .all())


def add_inventory_item(actor, name, flavor, category, selling_price, quantity,
                       reorder_level=Config.DEFAULT_REORDER_LEVEL):
    _require_admin(actor)
    _require_text(name, flavor, category)
    item = InventoryItem(
        name=name.strip(),
        flavor=flavor.strip(),
        category=category.strip(),
        selling_price=parse_price(selling_price),
        stock_quantity=parse_count(quantity, 'Quantity'),
        reorder_level=parse_count(reorder_level, 'Reorder level'),
    )
    with _store_call('add item'):
        db.session.add(item)
        db.session.commit()
    logger.info('item %s added by %s', item.id, actor.email)
    return item


def _load_for_update(item_id, action):
    item = db.session.get(InventoryItem, item_id)
    if item is None:
        raise StoreError(f'Failed to {action}: item {item_id} not found')
    return item


def update_inventory_item(actor, item_id, name, flavor, category, selling_price,
                          stock_quantity, reorder_level):
    _require_admin(actor)
    _require_text(name, flavor, category)
    price = parse_price(selling_price)
    stock = parse_count(stock_quantity, 'Quantity')
    reorder = parse_count(reorder_level, 'Reorder level')
    with _store_call('update item'):
        item = _load_for_update(item_id, 'update item')
        item.name = name.strip()
        item.flavor = flavor.strip()
        item.category = category.strip()
        item.selling_price = price
        item.stock_quantity = stock
        item.reorder_level = reorder
        db.session.commit()
    logger.info('item %s updated by %s', item_id, actor.email)
    return item


def update_item_price(actor, item_id, selling_price):
    _require_admin(actor)
    price = parse_price(selling_price)
    with _store_call('update price'):
        item = _load_for_update(item_id, 'update price')
        item.selling_price = price
        db.session.commit()
    return item


def update_inventory_stock(actor, item_id, new_quantity):
    _require_admin(actor)
    quantity = parse_count(new_quantity, 'Quantity')
    with _store_call('update stock'):
        item = _load_for_update(item_id, 'update stock')
        item.stock_quantity = quantity
        db.session.commit()
    return item


# sales ledger

def _sale_record(line, timestamp):
    price = Decimal(str(line.selling_price))
    cost = Decimal(str(line.cost_price))
    return SaleRecord(
        item_id=line.item_id,
        quantity=line.quantity,
        total_revenue=price * line.quantity,
        total_profit=(price - cost) * line.quantity,
        timestamp=timestamp,
    )


def record_sale(item_id, quantity, selling_price, cost_price, timestamp=None):
    """Insert a single ledger row priced at the given unit prices."""
    record = _sale_record(SaleLine(item_id, quantity, selling_price, cost_price),
                          timestamp or datetime.now())
    with _store_call('record sale'):
        db.session.add(record)
        db.session.commit()
    return record


def fetch_sales_by_date_range(start, end):
    with _store_call('load sales'):
        return (SaleRecord.query
                .filter(SaleRecord.timestamp >= start, SaleRecord.timestamp <= end)
                .order_by(SaleRecord.timestamp.desc())
                .all())


def commit_checkout(lines, timestamp=None):
    """Write a whole cart in one transaction.

    For each line, in order, a sale record is added and the item's stock is
    decremented with ``stock_quantity >= quantity`` as part of the UPDATE, so
    two tills selling the last units cannot both succeed.  If any line fails
    the check, nothing from this cart is kept and InsufficientStock
    is raised.
    """
    timestamp = timestamp or datetime.now()
    records = []
    try:
        for line in lines:
            record = _sale_record(line, timestamp)
            db.session.add(record)
            records.append(record)
            result = db.session.execute(
                update(InventoryItem)
                .where(InventoryItem.id == line.item_id,
                       InventoryItem.stock_quantity >= line.quantity)
                .values(stock_quantity=InventoryItem.stock_quantity - line.quantity,
                        updated_at=timestamp)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                db.session.rollback()
                logger.warning('checkout stopped: item %s has less than %s in stock',
                               line.item_id, line.quantity)
                raise InsufficientStock(line.item_id, line.quantity)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception('checkout write failed')
        raise StoreError('Failed to record sale') from exc
    return records
