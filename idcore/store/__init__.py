"""
Persistence for accounts, groups, hosts and tokens.

Every operation takes a :class:`.util.Transaction` as its first argument and
performs its reads and writes inside it; nothing becomes durable until the
enclosing :func:`.util.transaction` block exits normally.
"""

from . import exceptions, models, passwords, tokens, util
from .util import Transaction, transaction, create_all, drop_all, \
    init_engine, session_factory
