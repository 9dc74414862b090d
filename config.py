# this file holds the settings for the nostic foods pos
# values can be overridden with environment variables or a .env file next to it

import os
from decimal import Decimal
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent

if (BASE_DIR / '.env').exists():
    load_dotenv(dotenv_path=BASE_DIR / '.env', override=False)


class Config:
    SECRET_KEY = os.environ.get('NOSTIC_SECRET_KEY', 'nostic-foods-dev-key')
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        'NOSTIC_DATABASE_URI', 'sqlite:///' + str(BASE_DIR / 'nostic.db'))
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = os.environ.get('NOSTIC_LOG_LEVEL', 'INFO')

    # business rules
    TAX_RATE = Decimal('0.05')             # flat gst on every bill
    COST_RATIO = Decimal('0.7')            # cost price is 70% of selling price
    RESTOCK_MULTIPLIER = 5                 # reorder up to 5x the reorder level
    DEFAULT_REORDER_LEVEL = 10
    TOP_ITEMS_LIMIT = 5
    CATEGORIES = ['Popsicles', 'Milk-Based', 'Premium']

    # 0 = monday ... 6 = sunday
    WEEK_START = int(os.environ.get('NOSTIC_WEEK_START', 6))

    # manager summary refresh
    MANAGER_POLL_SECONDS = int(os.environ.get('NOSTIC_POLL_SECONDS', 30))
    SUMMARY_POLLER_ENABLED = os.environ.get('NOSTIC_POLLER', '0') == '1'

    # accounts created on first start
    SEED_DEFAULTS = True
    ADMIN_EMAIL = os.environ.get('NOSTIC_ADMIN_EMAIL', 'admin@nostic.com')
    ADMIN_PASSWORD = os.environ.get('NOSTIC_ADMIN_PASSWORD', 'nostic-admin')
    MANAGER_EMAIL = os.environ.get('NOSTIC_MANAGER_EMAIL', 'manager@nostic.com')
    MANAGER_PASSWORD = os.environ.get('NOSTIC_MANAGER_PASSWORD', 'nostic-manager')


class DevelopmentConfig(Config):
    DEBUG = True


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = 'testing'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SUMMARY_POLLER_ENABLED = False
    SEED_DEFAULTS = False
