"""Email address records and address verification tokens."""

import logging
import re
from typing import Optional

from .. import domain
from ..config import Config
from . import tokens
from .exceptions import InvalidEmailAddress, NoSuchEntry
from .models import DBEmailAddress, DBEmailVerificationToken
from .util import Transaction

logger = logging.getLogger(__name__)

ATEXT = r"[A-Za-z0-9!#$%&'*+/=?^_`{|}~-]"
LOCAL_PART = re.compile(rf'{ATEXT}+(\.{ATEXT}+)*')
"""Dot-atom local part (RFC 5322, section 3.4.1)."""

MAX_LOCAL_PART_LENGTH = 64


class EmailAddresses:
    """Email addresses and their verification tokens."""

    def __init__(self, config: Config) -> None:
        self.config = config

    def validate(self, email_local: str, email_domain: str) -> None:
        """
        Check that an address may be submitted for verification.

        Raises
        ------
        :class:`InvalidEmailAddress`
            The local part is not a plain dot-atom, or the domain is not one
            of the accepted domains.

        """
        if len(email_local) > MAX_LOCAL_PART_LENGTH \
                or LOCAL_PART.fullmatch(email_local) is None:
            raise InvalidEmailAddress('Invalid local part')
        if email_domain not in self.config.email_allowed_domains:
            raise InvalidEmailAddress(f'Domain not accepted: {email_domain}')

    def create(self, tr: Transaction, email_local: str, email_domain: str,
               owner_idx: Optional[int] = None) -> int:
        db_address = DBEmailAddress(address_local=email_local,
                                    address_domain=email_domain,
                                    owner_idx=owner_idx)
        tr.session.add(db_address)
        tr.session.flush()
        idx: int = db_address.idx
        return idx

    def set_owner(self, tr: Transaction, email_idx: int,
                  owner_idx: int) -> None:
        updated = tr.session.query(DBEmailAddress) \
            .filter(DBEmailAddress.idx == email_idx) \
            .update({DBEmailAddress.owner_idx: owner_idx},
                    synchronize_session=False)
        if not updated:
            raise NoSuchEntry('No such email address')

    def get_idx(self, tr: Transaction, email_local: str,
                email_domain: str) -> int:
        row = tr.session.query(DBEmailAddress.idx) \
            .filter(DBEmailAddress.address_local == email_local) \
            .filter(DBEmailAddress.address_domain == email_domain) \
            .first()
        if row is None:
            raise NoSuchEntry('No such email address')
        idx: int = row.idx
        return idx

    def generate_verification_token(self, tr: Transaction,
                                    email_idx: int) -> str:
        """Issue (or reissue) the verification token of an address."""
        tokens.reset_resend_count_if_expired(tr, DBEmailVerificationToken,
                                             'email_idx', email_idx)
        token = tokens.generate_token()
        expires = tokens.expiry(self.config.email_token_lifetime)
        tokens.upsert_token(tr, DBEmailVerificationToken, 'email_idx',
                            email_idx, token, expires)
        return token

    def get_email_address_by_token(self, tr: Transaction,
                                   token: str) -> domain.EmailAddress:
        """
        Get the address a verification token was issued for.

        Raises
        ------
        :class:`NoSuchEntry`
            No such token.
        :class:`ExpiredToken`
            The token is no longer valid.

        """
        db_token = tokens.get_token_row(tr, DBEmailVerificationToken, token)
        tokens.ensure_not_expired(db_token.expires)
        db_address = tr.session.query(DBEmailAddress) \
            .filter(DBEmailAddress.idx == db_token.email_idx) \
            .first()
        if db_address is None:
            raise NoSuchEntry('No such email address')
        return domain.EmailAddress(local=db_address.address_local,
                                   domain=db_address.address_domain)

    def get_resend_count_by_email_idx(self, tr: Transaction,
                                      email_idx: int) -> int:
        db_token = tr.session.query(DBEmailVerificationToken) \
            .filter(DBEmailVerificationToken.email_idx == email_idx) \
            .populate_existing() \
            .first()
        if db_token is None:
            raise NoSuchEntry('No token for email address')
        resend_count: int = db_token.resend_count
        return resend_count

    def remove_verification_token(self, tr: Transaction, token: str) -> int:
        return tokens.remove_token(tr, DBEmailVerificationToken, token)
