# sales reporting and restock suggestions
# the folds at the top work on rows the caller already fetched;
# sales_stats and top_items fetch for a named date window

import calendar
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal

import store
from config import Config
from errors import ValidationError

logger = logging.getLogger(__name__)

WINDOWS = ('today', 'week', '7days', 'month', '30days', 'custom')
ZERO = Decimal('0')


@dataclass(frozen=True)
class SalesStats:
    total_revenue: Decimal = ZERO
    total_profit: Decimal = ZERO
    total_items: int = 0

    @property
    def profit_margin(self):
        """Profit as a percentage of revenue, 0 when nothing was sold."""
        if self.total_revenue <= 0:
            return ZERO
        return self.total_profit / self.total_revenue * 100

    def as_dict(self):
        return {
            'totalRevenue': str(self.total_revenue),
            'totalProfit': str(self.total_profit),
            'totalItems': self.total_items,
            'profitMargin': str(round(self.profit_margin, 1)),
        }


@dataclass
class ItemSales:
    item_id: int
    name: str
    flavor: str
    quantity: int = 0
    revenue: Decimal = ZERO
    profit: Decimal = ZERO


@dataclass(frozen=True)
class RestockRecommendation:
    item_id: int
    name: str
    flavor: str
    current_stock: int
    reorder_level: int
    suggested_quantity: int


def compute_stats(sales):
    revenue, profit, items = ZERO, ZERO, 0
    for sale in sales:
        revenue += sale.total_revenue
        profit += sale.total_profit
        items += sale.quantity
    return SalesStats(revenue, profit, items)


def top_selling_items(sales, inventory, limit=10):
    """Group sales per item and return the best sellers by quantity.

    ``inventory`` is only used for the display name and flavor; a sale whose
    item is missing from it is still counted, with ``name``/``flavor`` None.
    Items with equal quantity keep the order in which they were first seen
    in ``sales``.
    """
    if limit <= 0:
        return []
    by_id = {item.id: item for item in inventory}
    groups = OrderedDict()
    for sale in sales:
        entry = groups.get(sale.item_id)
        if entry is None:
            item = by_id.get(sale.item_id)
            entry = groups[sale.item_id] = ItemSales(
                item_id=sale.item_id,
                name=getattr(item, 'name', None),
                flavor=getattr(item, 'flavor', None),
            )
        entry.quantity += sale.quantity
        entry.revenue += sale.total_revenue
        entry.profit += sale.total_profit
    ranked = sorted(groups.values(), key=lambda e: e.quantity, reverse=True)
    return ranked[:limit]


def is_low_stock(item):
    return item.stock_quantity <= item.reorder_level


def restock_recommendations(inventory, multiplier=Config.RESTOCK_MULTIPLIER):
    # suggestions are not clamped at 0; only a negative reorder level
    # (edited outside the app) can make one negative
    low = sorted((item for item in inventory if is_low_stock(item)),
                 key=lambda item: item.stock_quantity)
    return [
        RestockRecommendation(
            item_id=item.id,
            name=item.name,
            flavor=item.flavor,
            current_stock=item.stock_quantity,
            reorder_level=item.reorder_level,
            suggested_quantity=item.reorder_level * multiplier - item.stock_quantity,
        )
        for item in low
    ]


# date windows

def _day_bounds(day):
    return datetime.combine(day, time.min), datetime.combine(day, time.max)


def _as_day(value):
    if isinstance(value, datetime):
        return value.date()
    return value


def date_window(window, now=None, start=None, end=None, week_start=Config.WEEK_START):
    """Return the inclusive ``(start, end)`` datetimes for a report window.

    ``custom`` uses the whole days from ``start`` to ``end``; if either is
    missing the window falls back to today, as does an unknown name.
    ``week_start`` is a weekday number (0 is Monday, 6 is Sunday).
    """
    now = now or datetime.now()
    today = now.date()

    if window == 'today':
        return _day_bounds(today)
    if window == 'week':
        first = today - timedelta(days=(today.weekday() - week_start) % 7)
        return _day_bounds(first)[0], _day_bounds(first + timedelta(days=6))[1]
    if window == '7days':
        return now - timedelta(days=7), now
    if window == 'month':
        last = calendar.monthrange(today.year, today.month)[1]
        return (_day_bounds(today.replace(day=1))[0],
                _day_bounds(today.replace(day=last))[1])
    if window == '30days':
        return now - timedelta(days=30), now
    if window == 'custom':
        if start and end:
            return _day_bounds(_as_day(start))[0], _day_bounds(_as_day(end))[1]
        return _day_bounds(today)
    logger.warning('unknown report window %r, using today', window)
    return _day_bounds(today)


def parse_day(value):
    """Parse a ``YYYY-MM-DD`` form value; blank gives None."""
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f'Not a valid date: {value}')


# window queries

def sales_stats(window='today', now=None, start=None, end=None, week_start=Config.WEEK_START):
    lower, upper = date_window(window, now=now, start=start, end=end, week_start=week_start)
    return compute_stats(store.fetch_sales_by_date_range(lower, upper))


def top_items(window='today', limit=Config.TOP_ITEMS_LIMIT, now=None, start=None, end=None,
              week_start=Config.WEEK_START):
    lower, upper = date_window(window, now=now, start=start, end=end, week_start=week_start)
    sales = store.fetch_sales_by_date_range(lower, upper)
    return top_selling_items(sales, store.fetch_inventory(), limit)
