"""
Single-use tokens with an expiry and a resend counter.

Token tables hold at most one row per key (user or email address). Issuing a
token for a key that already has one replaces the token and bumps
``resend_count``. The counter is reset to zero first, and only if the previous
token has actually expired, so the first reissue after expiry counts 1.
"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import update
from sqlalchemy.dialects import postgresql, sqlite

from . import util
from .exceptions import ExpiredToken, NoSuchEntry
from .util import Transaction

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


def generate_token() -> str:
    """Get a new unguessable token, hex-encoded."""
    return secrets.token_hex(TOKEN_BYTES)


def expiry(lifetime: int) -> datetime:
    """Expiry time of a token issued now, ``lifetime`` seconds long."""
    return util.now() + timedelta(seconds=lifetime)


def reset_resend_count_if_expired(tr: Transaction, model: Any, key: str,
                                  value: Any) -> None:
    """Zero the resend counter of the row keyed by ``value`` if it expired."""
    key_column = getattr(model, key)
    tr.session.execute(
        update(model)
        .where(key_column == value)
        .where(model.expires <= util.now())
        .values(resend_count=0)
        .execution_options(synchronize_session=False)
    )


def upsert_token(tr: Transaction, model: Any, key: str, value: Any,
                 token: str, expires: datetime) -> None:
    """
    Store ``token`` for the row keyed by ``value``.

    An existing row gets the new token and expiry, and its ``resend_count``
    is incremented. Call :func:`reset_resend_count_if_expired` first.
    """
    if tr.dialect in ('postgresql', 'sqlite'):
        dialect = postgresql if tr.dialect == 'postgresql' else sqlite
        stmt = dialect.insert(model).values(
            {key: value, 'token': token, 'expires': expires}
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[getattr(model, key)],
            set_={
                'token': stmt.excluded.token,
                'expires': stmt.excluded.expires,
                'resend_count': model.resend_count + 1,
            }
        )
        tr.session.execute(stmt)
        return

    db_token = tr.session.query(model) \
        .filter(getattr(model, key) == value) \
        .with_for_update() \
        .first()
    if db_token is None:
        tr.session.add(model(**{key: value, 'token': token,
                                'expires': expires}))
    else:
        db_token.resend_count = db_token.resend_count + 1
        db_token.token = token
        db_token.expires = expires
    tr.session.flush()


def ensure_not_expired(expires: datetime) -> None:
    """Raise :class:`ExpiredToken` if ``expires`` is not in the future."""
    if util.now() >= expires:
        raise ExpiredToken('Token has expired')


def get_token_row(tr: Transaction, model: Any, token: str) -> Any:
    """Load the token row for ``token``, or raise :class:`NoSuchEntry`."""
    db_token = tr.session.query(model) \
        .filter(model.token == token) \
        .populate_existing() \
        .first()
    if db_token is None:
        logger.debug('No such token')
        raise NoSuchEntry('No such token')
    return db_token


def remove_token(tr: Transaction, model: Any, token: str) -> int:
    """Delete the row for ``token``, returning its ``idx``."""
    db_token = get_token_row(tr, model, token)
    idx: int = db_token.idx
    tr.session.delete(db_token)
    tr.session.flush()
    return idx

