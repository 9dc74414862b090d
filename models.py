# this file defines the database structure for the pos system
# it uses 4 tables: staff logins, their session tokens, the inventory and the sales ledger

from datetime import datetime
from decimal import Decimal

from flask_login import UserMixin
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.orm import validates
from werkzeug.security import check_password_hash, generate_password_hash

from config import Config

db = SQLAlchemy()

ROLES = ('admin', 'manager')
Money = db.Numeric(12, 4)


def _as_decimal(value):
    if value is None or isinstance(value, Decimal):
        return value
    return Decimal(str(value))


# table 1: users - staff who can sign in, role is kept on the server
class User(UserMixin, db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(200), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='manager')

    # filled in by the auth layer with the token of the current sign-in
    session_token = None

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    @validates('role')
    def _check_role(self, key, role):
        if role not in ROLES:
            raise ValueError(f'unknown role {role!r}')
        return role

    @property
    def is_admin(self):
        return self.role == 'admin'

    def get_id(self):
        # flask-login keeps the session token in the cookie, not the user id
        return self.session_token

    def __repr__(self):
        return f'<User {self.email} ({self.role})>'


# table 2: auth sessions - one row per sign-in, revoked on logout
class AuthSession(db.Model):
    __tablename__ = 'auth_sessions'

    token = db.Column(db.String(64), primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.now, nullable=False)
    revoked_at = db.Column(db.DateTime)

    user = db.relationship('User', backref=db.backref('sessions', lazy=True))

    @property
    def is_active(self):
        return self.revoked_at is None


# table 3: inventory - flavors on sale with prices and stock
class InventoryItem(db.Model):
    __tablename__ = 'inventory'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    flavor = db.Column(db.String(200), nullable=False)
    category = db.Column(db.String(100), nullable=False)
    selling_price = db.Column(Money, nullable=False)
    cost_price = db.Column(Money, nullable=False)       # 70% of selling price
    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=False, default=Config.DEFAULT_REORDER_LEVEL)
    created_at = db.Column(db.DateTime, default=datetime.now, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)

    @validates('selling_price')
    def _derive_cost_price(self, key, price):
        # every write of the selling price also resets the cost price
        price = _as_decimal(price)
        self.cost_price = price * Config.COST_RATIO
        return price

    @property
    def unit_profit(self):
        return self.selling_price - self.cost_price

    def __repr__(self):
        return f'<InventoryItem {self.name} {self.flavor}>'


# table 4: sales - one row per cart line, never changed afterwards
class SaleRecord(db.Model):
    __tablename__ = 'sales'

    id = db.Column(db.Integer, primary_key=True)
    # plain id, no foreign key: the item may be removed later
    item_id = db.Column(db.Integer, nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    total_revenue = db.Column(Money, nullable=False)   # qty * selling_price
    total_profit = db.Column(Money, nullable=False)    # qty * (selling_price - cost_price)
    timestamp = db.Column(db.DateTime, default=datetime.now, nullable=False, index=True)

    def __repr__(self):
        return f'<SaleRecord item={self.item_id} qty={self.quantity}>'
