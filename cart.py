# the till: cart lines, bill totals and checkout
# a cart only knows items as they looked when last fetched, so its stock checks
# are against that snapshot; store.commit_checkout has the final word on stock

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

import store
from config import Config
from errors import CartRejection, CheckoutError, StoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ItemSnapshot:
    id: int
    name: str
    flavor: str
    category: str
    selling_price: Decimal
    cost_price: Decimal
    stock_quantity: int

    @classmethod
    def from_item(cls, item):
        if isinstance(item, cls):
            return item
        return cls(
            id=item.id,
            name=item.name,
            flavor=item.flavor,
            category=item.category,
            selling_price=Decimal(str(item.selling_price)),
            cost_price=Decimal(str(item.cost_price)),
            stock_quantity=item.stock_quantity,
        )

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'flavor': self.flavor,
            'category': self.category,
            'selling_price': str(self.selling_price),
            'cost_price': str(self.cost_price),
            'stock_quantity': self.stock_quantity,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=int(data['id']),
            name=data['name'],
            flavor=data['flavor'],
            category=data['category'],
            selling_price=Decimal(data['selling_price']),
            cost_price=Decimal(data['cost_price']),
            stock_quantity=int(data['stock_quantity']),
        )


@dataclass
class CartLine:
    item: ItemSnapshot
    quantity: int

    @property
    def line_total(self):
        return self.item.selling_price * self.quantity

    @property
    def line_profit(self):
        return (self.item.selling_price - self.item.cost_price) * self.quantity


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    profit: Decimal


def compute_totals(lines, tax_rate=Config.TAX_RATE):
    """Bill totals for the given cart lines, unrounded."""
    subtotal = sum((line.line_total for line in lines), Decimal('0'))
    profit = sum((line.line_profit for line in lines), Decimal('0'))
    tax = subtotal * tax_rate
    return Totals(subtotal=subtotal, tax=tax, total=subtotal + tax, profit=profit)


class Cart:

    def __init__(self, lines=None):
        self._lines = {}
        for line in lines or ():
            self._lines[line.item.id] = line

    def __len__(self):
        return len(self._lines)

    def __iter__(self):
        return iter(list(self._lines.values()))

    def __contains__(self, item_id):
        return item_id in self._lines

    @property
    def lines(self):
        return list(self._lines.values())

    def quantity_of(self, item_id):
        line = self._lines.get(item_id)
        return line.quantity if line else 0

    def add(self, item):
        snapshot = ItemSnapshot.from_item(item)
        if snapshot.stock_quantity <= 0:
            raise CartRejection('Item out of stock!')
        line = self._lines.get(snapshot.id)
        if line is None:
            self._lines[snapshot.id] = CartLine(snapshot, 1)
            return self._lines[snapshot.id]
        if line.quantity + 1 > snapshot.stock_quantity:
            raise CartRejection('Insufficient stock!')
        line.item = snapshot
        line.quantity += 1
        return line

    def update_quantity(self, item_id, quantity, item=None):
        if quantity <= 0:
            self.remove(item_id)
            return None
        line = self._lines.get(item_id)
        if line is None:
            return None
        snapshot = ItemSnapshot.from_item(item) if item is not None else line.item
        if quantity > snapshot.stock_quantity:
            raise CartRejection('Insufficient stock!')
        line.item = snapshot
        line.quantity = quantity
        return line

    def remove(self, item_id):
        self._lines.pop(item_id, None)

    def clear(self):
        self._lines.clear()

    def totals(self, tax_rate=Config.TAX_RATE):
        return compute_totals(self.lines, tax_rate)

    def sale_lines(self):
        return [
            store.SaleLine(line.item.id, line.quantity,
                           line.item.selling_price, line.item.cost_price)
            for line in self.lines
        ]

    # the cart travels in the flask session between requests

    def to_session(self):
        return [{'item': line.item.to_dict(), 'quantity': line.quantity}
                for line in self.lines]

    @classmethod
    def from_session(cls, data):
        return cls(CartLine(ItemSnapshot.from_dict(entry['item']), int(entry['quantity']))
                   for entry in data or ())


@dataclass
class Receipt:
    lines: list
    totals: Totals
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def item_count(self):
        return sum(line.quantity for line in self.lines)

    def to_session(self):
        return {
            'lines': [{'item': line.item.to_dict(), 'quantity': line.quantity}
                      for line in self.lines],
            'timestamp': self.timestamp.isoformat(),
        }

    @classmethod
    def from_session(cls, data, tax_rate=Config.TAX_RATE):
        lines = Cart.from_session(data['lines']).lines
        return cls(lines=lines,
                   totals=compute_totals(lines, tax_rate),
                   timestamp=datetime.fromisoformat(data['timestamp']))


def checkout(cart, now=None, tax_rate=Config.TAX_RATE):
    """Sell everything in the cart and return the receipt.

    The sale records and stock decrements are written in one transaction.
    On failure the cart is left untouched so the cashier can retry.
    """
    if not len(cart):
        raise CartRejection('Cart is empty!')
    now = now or datetime.now()
    try:
        store.commit_checkout(cart.sale_lines(), timestamp=now)
    except StoreError as exc:
        logger.warning('checkout of %d lines failed: %s', len(cart), exc)
        raise CheckoutError() from exc
    receipt = Receipt(lines=cart.lines, totals=cart.totals(tax_rate), timestamp=now)
    cart.clear()
    logger.info('checkout complete: %d items, total %s', receipt.item_count, receipt.totals.total)
    return receipt
