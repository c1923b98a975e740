"""Permissions granted to groups."""

import logging
from typing import Protocol, Set

from .exceptions import NoSuchEntry
from .models import DBPermission, DBPermissionRequirement
from .util import Transaction

logger = logging.getLogger(__name__)


class ReachableGroups(Protocol):
    def get_user_reachable_groups(self, tr: Transaction,
                                  user_idx: int) -> Set[int]:
        ...


class Permissions:
    """Members of a group hold every permission granted to that group."""

    def __init__(self, users: ReachableGroups) -> None:
        self._users = users

    def create(self, tr: Transaction, name: str) -> int:
        db_permission = DBPermission(name=name)
        tr.session.add(db_permission)
        tr.session.flush()
        idx: int = db_permission.idx
        return idx

    def add_permission_requirement(self, tr: Transaction, group_idx: int,
                                   permission_idx: int) -> int:
        """Grant ``permission_idx`` to the members of ``group_idx``."""
        db_requirement = DBPermissionRequirement(
            group_idx=group_idx,
            permission_idx=permission_idx
        )
        tr.session.add(db_requirement)
        tr.session.flush()
        idx: int = db_requirement.idx
        return idx

    def check_user_have_permission(self, tr: Transaction, user_idx: int,
                                   permission_idx: int) -> bool:
        rows = tr.session.query(DBPermissionRequirement.group_idx) \
            .filter(DBPermissionRequirement.permission_idx == permission_idx) \
            .all()
        granted = {row.group_idx for row in rows}
        if not granted:
            return False
        try:
            reachable = self._users.get_user_reachable_groups(tr, user_idx)
        except NoSuchEntry:
            logger.debug('User %s has no memberships', user_idx)
            return False
        return not granted.isdisjoint(reachable)
