"""Provide methods for working with user accounts."""

import logging
from typing import List, Optional, Protocol, Set, Union

from sqlalchemy import func
from sqlalchemy.orm import aliased

from .. import domain
from ..config import Config
from . import passwords, posix, tokens, util
from .exceptions import NoSuchEntry, NotActivated
from .models import DBEmailAddress, DBPasswordChangeToken, DBStudentNumber, \
    DBUser, DBUserMembership
from .posix import PosixAccountCache
from .util import Transaction

logger = logging.getLogger(__name__)

USERS_TABLE = DBUser.__tablename__


class GroupGraph(Protocol):
    def get_group_reachable_array(self, tr: Transaction,
                                  group_idx: int) -> List[int]:
        ...


class Users:
    """
    Identity store.

    Every write that changes what the directory projection would contain
    (account creation, deletion, shell change) clears ``posix_accounts``
    right away and once more when the transaction commits or rolls back.
    """

    def __init__(self, config: Config, groups: GroupGraph,
                 posix_accounts: Optional[PosixAccountCache] = None) -> None:
        self.config = config
        self._groups = groups
        self.posix_accounts = posix_accounts or PosixAccountCache(config)

    def _invalidate_posix_accounts(self, tr: Transaction) -> None:
        self.posix_accounts.invalidate()
        tr.on_commit(self.posix_accounts.invalidate)
        tr.on_rollback(self.posix_accounts.invalidate)

    def create(self, tr: Transaction, username: Optional[str], password: str,
               name: str, shell: Optional[str],
               preferred_language: Union[domain.Language, str]) -> int:
        """
        Create a new account.

        The password is digested with the current algorithm and a UID is
        allocated under an exclusive lock on the account table.

        Returns
        -------
        int
            ``idx`` of the new account.

        """
        password_digest = passwords.hash_password(password)
        uid = self.generate_uid(tr)
        db_user = DBUser(
            username=username,
            password_digest=password_digest,
            name=name,
            uid=uid,
            shell=shell,
            preferred_language=domain.Language(preferred_language).value,
        )
        tr.session.add(db_user)
        tr.session.flush()
        self._invalidate_posix_accounts(tr)
        logger.info('Created user %s with uid %i', db_user.idx, uid)
        idx: int = db_user.idx
        return idx

    def delete(self, tr: Transaction, user_idx: int) -> int:
        deleted = tr.session.query(DBUser) \
            .filter(DBUser.idx == user_idx) \
            .delete(synchronize_session=False)
        if not deleted:
            raise NoSuchEntry('No such user')
        self._invalidate_posix_accounts(tr)
        logger.info('Deleted user %s', user_idx)
        return user_idx

    def get_all(self, tr: Transaction) -> List[domain.User]:
        db_users = tr.session.query(DBUser) \
            .order_by(DBUser.idx) \
            .populate_existing() \
            .all()
        return [_to_user(db_user) for db_user in db_users]

    def get_all_as_posix_accounts(self, tr: Transaction) \
            -> List[domain.PosixAccount]:
        """Directory entries of all projectable accounts, from cache."""
        return self.posix_accounts.get_or_build(tr, self.get_all)

    def get_by_username(self, tr: Transaction, username: str) -> domain.User:
        """
        Get the account with ``username``.

        Raises
        ------
        :class:`NoSuchEntry`
            Raised unless exactly one account matches.

        """
        db_users = tr.session.query(DBUser) \
            .filter(DBUser.username == username) \
            .populate_existing() \
            .all()
        if len(db_users) != 1:
            raise NoSuchEntry('No such user')
        return _to_user(db_users[0])

    def get_by_username_as_posix_account(self, tr: Transaction,
                                         username: str) \
            -> domain.PosixAccount:
        return posix.require_posix_account(
            self.config, self.get_by_username(tr, username)
        )

    def get_by_user_idx(self, tr: Transaction, user_idx: int) -> domain.User:
        return _to_user(self._get(tr, user_idx))

    def get_user_idx_by_email_address(self, tr: Transaction, email_local: str,
                                      email_domain: str) -> int:
        """Owner of an address; the local part is matched case-insensitively."""
        row = tr.session.query(DBEmailAddress.owner_idx) \
            .filter(func.lower(DBEmailAddress.address_local)
                    == func.lower(email_local)) \
            .filter(DBEmailAddress.address_domain == email_domain) \
            .filter(DBEmailAddress.owner_idx.isnot(None)) \
            .first()
        if row is None:
            raise NoSuchEntry('No such email address')
        owner_idx: int = row.owner_idx
        return owner_idx

    def authenticate(self, tr: Transaction, username: str,
                     password: str) -> int:
        """
        Validate username and password.

        Activation is checked before the password is looked at. A legacy
        digest that matches is replaced with a current one.

        Returns
        -------
        int
            ``idx`` of the authenticated account.

        Raises
        ------
        :class:`NoSuchEntry`
            No account has ``username``.
        :class:`NotActivated`
            The account is deactivated.
        :class:`AuthenticationFailed`
            The password does not match.

        """
        logger.debug('Authenticate with password, user: %s', username)
        db_user = tr.session.query(DBUser) \
            .filter(DBUser.username == username) \
            .populate_existing() \
            .first()
        if db_user is None:
            logger.debug('No such user: %s', username)
            raise NoSuchEntry('No such user')
        if not db_user.activated:
            raise NotActivated('User is not activated')

        idx: int = db_user.idx
        verification = passwords.check_password(password,
                                                db_user.password_digest)
        if verification is passwords.Verification.MIGRATE:
            logger.info('Migrating legacy password digest of user %s', idx)
            self.change_password(tr, idx, password)

        self.update_last_login_at(tr, idx)
        return idx

    def update_last_login_at(self, tr: Transaction, user_idx: int) -> None:
        self._update(tr, user_idx, {DBUser.last_login_at: util.now()})

    def activate(self, tr: Transaction, user_idx: int) -> None:
        self._update(tr, user_idx, {DBUser.activated: True})

    def deactivate(self, tr: Transaction, user_idx: int) -> None:
        self._update(tr, user_idx, {DBUser.activated: False})

    def generate_uid(self, tr: Transaction) -> int:
        """
        Allocate a UID for a new account.

        Takes an exclusive lock on the account table that is held until the
        transaction ends; the gap search below is only correct while no other
        transaction can insert a UID.

        The result is the smallest ``uid + 1`` at or above the configured
        floor that is not itself taken, scanning existing UIDs in order, so
        holes left by deleted accounts are reused. If there is no such
        candidate (for instance, no account has a UID at or just below the
        floor yet) the floor itself is returned.
        """
        tr.ensure_exclusive_lock(USERS_TABLE)
        min_uid = self.config.min_uid
        taken = aliased(DBUser)
        below = aliased(DBUser)
        row = tr.session.query((below.uid + 1).label('uid')) \
            .select_from(below) \
            .outerjoin(taken, taken.uid == below.uid + 1) \
            .filter(taken.idx.is_(None)) \
            .filter(below.uid + 1 >= min_uid) \
            .order_by(below.uid) \
            .limit(1) \
            .first()
        if row is None:
            return min_uid
        uid: int = row.uid
        return uid

    def change_password(self, tr: Transaction, user_idx: int,
                        new_password: str) -> int:
        password_digest = passwords.hash_password(new_password)
        self._update(tr, user_idx, {DBUser.password_digest: password_digest})
        return user_idx

    def change_shell(self, tr: Transaction, user_idx: int, shell: str) -> int:
        self._update(tr, user_idx, {DBUser.shell: shell})
        self._invalidate_posix_accounts(tr)
        return user_idx

    def get_shell(self, tr: Transaction, user_idx: int) -> Optional[str]:
        shell: Optional[str] = self._get(tr, user_idx).shell
        return shell

    def get_password_digest(self, tr: Transaction, user_idx: int) -> str:
        digest: str = self._get(tr, user_idx).password_digest
        return digest

    def generate_password_change_token(self, tr: Transaction,
                                       user_idx: int) -> str:
        """
        Issue a password change token for ``user_idx``.

        Replaces any existing token for the user and increments
        ``resend_count``. The count is zeroed beforehand only if the old token
        has already expired.
        """
        tokens.reset_resend_count_if_expired(tr, DBPasswordChangeToken,
                                             'user_idx', user_idx)
        token = tokens.generate_token()
        expires = tokens.expiry(self.config.password_token_lifetime)
        tokens.upsert_token(tr, DBPasswordChangeToken, 'user_idx', user_idx,
                            token, expires)
        return token

    def reset_resend_count_if_expired(self, tr: Transaction,
                                      user_idx: int) -> None:
        tokens.reset_resend_count_if_expired(tr, DBPasswordChangeToken,
                                             'user_idx', user_idx)

    def ensure_token_not_expired(self, tr: Transaction, token: str) -> None:
        """
        Raises
        ------
        :class:`NoSuchEntry`
        :class:`ExpiredToken`

        """
        db_token = tokens.get_token_row(tr, DBPasswordChangeToken, token)
        tokens.ensure_not_expired(db_token.expires)

    def get_resend_count(self, tr: Transaction, token: str) -> int:
        db_token = tokens.get_token_row(tr, DBPasswordChangeToken, token)
        resend_count: int = db_token.resend_count
        return resend_count

    def remove_token(self, tr: Transaction, token: str) -> int:
        return tokens.remove_token(tr, DBPasswordChangeToken, token)

    def get_user_idx_by_password_token(self, tr: Transaction,
                                       token: str) -> int:
        db_token = tokens.get_token_row(tr, DBPasswordChangeToken, token)
        user_idx: int = db_token.user_idx
        return user_idx

    def add_user_membership(self, tr: Transaction, user_idx: int,
                            group_idx: int) -> int:
        db_membership = DBUserMembership(user_idx=user_idx,
                                         group_idx=group_idx)
        tr.session.add(db_membership)
        tr.session.flush()
        idx: int = db_membership.idx
        return idx

    def delete_user_membership(self, tr: Transaction,
                               user_membership_idx: int) -> int:
        deleted = tr.session.query(DBUserMembership) \
            .filter(DBUserMembership.idx == user_membership_idx) \
            .delete(synchronize_session=False)
        if not deleted:
            raise NoSuchEntry('No such membership')
        return user_membership_idx

    def get_all_user_memberships(self, tr: Transaction, user_idx: int) \
            -> List[domain.UserMembership]:
        rows = tr.session.query(DBUserMembership.user_idx,
                                DBUserMembership.group_idx) \
            .filter(DBUserMembership.user_idx == user_idx) \
            .order_by(DBUserMembership.idx) \
            .all()
        if not rows:
            raise NoSuchEntry('User has no memberships')
        return [domain.UserMembership(row.user_idx, row.group_idx)
                for row in rows]

    def get_user_reachable_groups(self, tr: Transaction,
                                  user_idx: int) -> Set[int]:
        """
        Every group the user belongs to, directly or through other groups.

        Raises
        ------
        :class:`NoSuchEntry`
            The user has no direct memberships (or does not exist).

        """
        group_set: Set[int] = set()
        for membership in self.get_all_user_memberships(tr, user_idx):
            group_set.update(
                self._groups.get_group_reachable_array(tr,
                                                       membership.group_idx)
            )
        return group_set

    def add_student_number(self, tr: Transaction, user_idx: int,
                           student_number: str) -> int:
        db_student_number = DBStudentNumber(student_number=student_number,
                                            owner_idx=user_idx)
        tr.session.add(db_student_number)
        tr.session.flush()
        idx: int = db_student_number.idx
        return idx

    def _get(self, tr: Transaction, user_idx: int) -> DBUser:
        db_user = tr.session.query(DBUser) \
            .filter(DBUser.idx == user_idx) \
            .populate_existing() \
            .first()
        if db_user is None:
            raise NoSuchEntry('No such user')
        return db_user

    def _update(self, tr: Transaction, user_idx: int, values: dict) -> None:
        updated = tr.session.query(DBUser) \
            .filter(DBUser.idx == user_idx) \
            .update(values, synchronize_session=False)
        if not updated:
            raise NoSuchEntry('No such user')


def _to_user(db_user: DBUser) -> domain.User:
    return domain.User(
        idx=db_user.idx,
        username=db_user.username,
        name=db_user.name,
        uid=db_user.uid,
        shell=db_user.shell,
        preferred_language=domain.Language(db_user.preferred_language)
        if db_user.preferred_language else None,
    )
