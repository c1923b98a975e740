"""Hosts, host groups and host-based authorization."""

import ipaddress
import logging
from enum import Enum
from typing import Optional, Protocol, Tuple

from .. import domain
from .exceptions import AuthorizationFailed, NoSuchEntry
from .models import DBHost, DBHostGroup
from .util import Transaction

logger = logging.getLogger(__name__)


class PermissionChecker(Protocol):
    def check_user_have_permission(self, tr: Transaction, user_idx: int,
                                   permission_idx: int) -> bool:
        ...


class HostAccess(Enum):
    """What it takes to be let onto a host."""

    UNRESTRICTED = 'unrestricted'
    """The host belongs to no host group."""

    GROUP_ONLY = 'group-only'
    """The host group requires no particular permission."""

    PERMISSION_REQUIRED = 'permission-required'


def classify_host_access(host: domain.Host,
                         host_group: Optional[domain.HostGroup]) \
        -> Tuple[HostAccess, Optional[int]]:
    """
    Decide which access rule applies to ``host``.

    Returns
    -------
    :class:`HostAccess`
    int or None
        The permission to check. Set exactly when the access rule is
        ``PERMISSION_REQUIRED``.

    """
    if host.host_group_idx is None or host_group is None:
        return HostAccess.UNRESTRICTED, None
    if host_group.required_permission_idx is None:
        return HostAccess.GROUP_ONLY, None
    return HostAccess.PERMISSION_REQUIRED, host_group.required_permission_idx


def normalize_address(address: str) -> str:
    """Canonical text form of an IPv4 or IPv6 address."""
    return str(ipaddress.ip_address(address.strip()))


class Hosts:
    """Host registry."""

    def __init__(self, permissions: PermissionChecker) -> None:
        self._permissions = permissions

    def add_host(self, tr: Transaction, name: str, host: str) -> int:
        db_host = DBHost(name=name, host=normalize_address(host))
        tr.session.add(db_host)
        tr.session.flush()
        idx: int = db_host.idx
        return idx

    def delete_host(self, tr: Transaction, host_idx: int) -> int:
        deleted = tr.session.query(DBHost) \
            .filter(DBHost.idx == host_idx) \
            .delete(synchronize_session=False)
        if not deleted:
            raise NoSuchEntry('No such host')
        return host_idx

    def add_host_group(self, tr: Transaction, name: str) -> int:
        db_host_group = DBHostGroup(name=name)
        tr.session.add(db_host_group)
        tr.session.flush()
        idx: int = db_host_group.idx
        return idx

    def delete_host_group(self, tr: Transaction, host_group_idx: int) -> int:
        deleted = tr.session.query(DBHostGroup) \
            .filter(DBHostGroup.idx == host_group_idx) \
            .delete(synchronize_session=False)
        if not deleted:
            raise NoSuchEntry('No such host group')
        return host_group_idx

    def set_host_group_permission(self, tr: Transaction, host_group_idx: int,
                                  permission_idx: Optional[int]) -> None:
        """Require ``permission_idx`` on the group; ``None`` lifts it."""
        updated = tr.session.query(DBHostGroup) \
            .filter(DBHostGroup.idx == host_group_idx) \
            .update({DBHostGroup.required_permission: permission_idx},
                    synchronize_session=False)
        if not updated:
            raise NoSuchEntry('No such host group')

    def add_host_to_group(self, tr: Transaction, host_idx: int,
                          host_group_idx: Optional[int]) -> None:
        updated = tr.session.query(DBHost) \
            .filter(DBHost.idx == host_idx) \
            .update({DBHost.host_group: host_group_idx},
                    synchronize_session=False)
        if not updated:
            raise NoSuchEntry('No such host')

    def get_host_by_inet(self, tr: Transaction, address: str) -> domain.Host:
        try:
            normalized = normalize_address(address)
        except ValueError as e:
            raise NoSuchEntry(f'Not an address: {address}') from e
        db_host = tr.session.query(DBHost) \
            .filter(DBHost.host == normalized) \
            .populate_existing() \
            .first()
        if db_host is None:
            raise NoSuchEntry('No such host')
        return _to_host(db_host)

    def get_host_group_by_idx(self, tr: Transaction,
                              host_group_idx: int) -> domain.HostGroup:
        db_host_group = tr.session.query(DBHostGroup) \
            .filter(DBHostGroup.idx == host_group_idx) \
            .populate_existing() \
            .first()
        if db_host_group is None:
            raise NoSuchEntry('No such host group')
        return domain.HostGroup(
            idx=db_host_group.idx,
            name=db_host_group.name,
            required_permission_idx=db_host_group.required_permission
        )

    def authorize_user_by_host(self, tr: Transaction, user_idx: int,
                               host: domain.Host) -> HostAccess:
        """
        Check that ``user_idx`` may use ``host``.

        Returns
        -------
        :class:`HostAccess`
            The rule under which access was granted.

        Raises
        ------
        :class:`AuthorizationFailed`
            The host group requires a permission the user does not hold.

        """
        host_group = None
        if host.host_group_idx is not None:
            host_group = self.get_host_group_by_idx(tr, host.host_group_idx)
        access, permission_idx = classify_host_access(host, host_group)
        if permission_idx is not None:
            if not self._permissions.check_user_have_permission(
                    tr, user_idx, permission_idx):
                logger.debug('User %s lacks permission %s for host %s',
                             user_idx, permission_idx, host.name)
                raise AuthorizationFailed('Permission required for host')
        return access


def _to_host(db_host: DBHost) -> domain.Host:
    return domain.Host(
        idx=db_host.idx,
        name=db_host.name,
        host=db_host.host,
        host_group_idx=db_host.host_group
    )
