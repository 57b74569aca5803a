"""
extensions.py — Flask extension singletons.

Initialises SQLAlchemy, marshmallow and the balance cache as module-level
objects so they can be imported anywhere without circular dependencies.

Pattern:
    1. Create the extension object here (no app attached yet).
    2. Call init_app(app) inside the app factory in app/__init__.py.
    3. Import `db`, `ma` or `balance_cache` from here wherever needed.

    from splitapp.app.extensions import db, ma, balance_cache

Do not pass the app object directly to SQLAlchemy() or Marshmallow() at
import time; that would prevent running tests with a separate app instance.
"""

from flask_marshmallow import Marshmallow
from flask_sqlalchemy import SQLAlchemy

from splitapp.app.cache import BalanceCache

db = SQLAlchemy()

# Marshmallow instance, initialised for completeness of the extension set.
#
# IMPORTANT — schema inheritance rule:
#   All validation Schema classes (in app/schemas/) inherit from
#   marshmallow.Schema directly, NOT from ma.Schema. ma.Schema needs an
#   active Flask application context, and tests/unit/ runs without one.
#
#   Correct:
#       from marshmallow import Schema, fields
#       class CreatePaymentSchema(Schema): ...
#
#   Incorrect:
#       class CreatePaymentSchema(ma.Schema): ...   # breaks unit tests
ma = Marshmallow()

# Balance view cache. TTL comes from BALANCE_CACHE_TTL_SECONDS at init_app().
balance_cache = BalanceCache()
