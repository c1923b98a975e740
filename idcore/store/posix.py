"""
Projection of accounts into posixAccount directory entries.

The projection is cached for the life of the process and thrown away
whenever an account write that affects it happens. There is no time-based
expiry.
"""

import logging
import threading
from typing import Callable, Iterable, List, Optional, Tuple, Union

from .. import domain
from ..config import Config
from .exceptions import NotProjectable
from .util import Transaction

logger = logging.getLogger(__name__)

Projection = Union[domain.PosixAccount, domain.Skipped]


def to_posix_account(config: Config, user: domain.User) -> Projection:
    """Map one account to its directory entry, or say why it has none."""
    if user.username is None:
        return domain.Skipped(user.idx, 'account has no username')
    if user.shell is None:
        return domain.Skipped(user.idx, 'account has no login shell')
    if user.uid is None:
        return domain.Skipped(user.idx, 'account has no uid')
    return domain.PosixAccount(
        dn=f'cn={user.username},{config.users_dn}',
        attributes={
            'uid': user.username,
            'cn': user.username,
            'gecos': user.name,
            'homeDirectory':
                f'{config.home_directory_prefix}/{user.username}',
            'loginShell': user.shell,
            'objectClass': list(domain.POSIX_ACCOUNT_OBJECT_CLASS),
            'uidNumber': user.uid,
            'gidNumber': config.user_group_gid,
        }
    )


def require_posix_account(config: Config,
                          user: domain.User) -> domain.PosixAccount:
    """Like :func:`to_posix_account`, raising :class:`NotProjectable`."""
    projection = to_posix_account(config, user)
    if isinstance(projection, domain.Skipped):
        raise NotProjectable(projection.reason)
    return projection


def project(config: Config, users: Iterable[domain.User]) \
        -> Tuple[List[domain.PosixAccount], List[domain.Skipped]]:
    """Partition ``users`` into directory entries and skipped accounts."""
    entries: List[domain.PosixAccount] = []
    skipped: List[domain.Skipped] = []
    for user in users:
        projection = to_posix_account(config, user)
        if isinstance(projection, domain.Skipped):
            skipped.append(projection)
        else:
            entries.append(projection)
    return entries, skipped


class PosixAccountCache:
    """
    Process-wide cache of the directory projection.

    A build that was started before an :meth:`invalidate` is returned to its
    caller but never stored, so the cache cannot be repopulated with data
    older than the latest invalidation.
    """

    def __init__(self, config: Config) -> None:
        self._config = config
        self._lock = threading.Lock()
        self._generation = 0
        self._entries: Optional[List[domain.PosixAccount]] = None
        self._skipped: List[domain.Skipped] = []

    @property
    def skipped(self) -> List[domain.Skipped]:
        """Accounts left out of the last stored build."""
        with self._lock:
            return list(self._skipped)

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def invalidate(self) -> None:
        with self._lock:
            self._generation += 1
            self._entries = None
            self._skipped = []

    def get_or_build(self, tr: Transaction,
                     load: Callable[[Transaction], Iterable[domain.User]]) \
            -> List[domain.PosixAccount]:
        """Get the cached entries, building them with ``load`` if needed."""
        with self._lock:
            if self._entries is not None:
                return list(self._entries)
            generation = self._generation

        entries, skipped = project(self._config, load(tr))
        if skipped:
            logger.debug('Skipped %i accounts in directory projection',
                         len(skipped))

        with self._lock:
            if generation == self._generation and self._entries is None:
                self._entries = entries
                self._skipped = skipped
            else:
                logger.debug('Projection invalidated during build')
        return list(entries)
