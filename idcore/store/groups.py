"""Groups and the transitive group membership graph."""

import logging
from typing import Dict, Iterable, List, Set, Tuple

from .exceptions import NoSuchEntry
from .models import DBGroup, DBGroupRelation
from .util import Transaction

logger = logging.getLogger(__name__)

Edge = Tuple[int, int]
"""``(subgroup_idx, supergroup_idx)``."""


def reachable_groups(start: int, edges: Iterable[Edge]) -> List[int]:
    """
    Reflexive-transitive closure of ``start`` over "is member of" edges.

    Each group appears once, in discovery order. Cycles are tolerated.
    """
    supergroups: Dict[int, List[int]] = {}
    for subgroup, supergroup in edges:
        supergroups.setdefault(subgroup, []).append(supergroup)

    visited: Set[int] = {start}
    reachable = [start]
    stack = [start]
    while stack:
        for supergroup in supergroups.get(stack.pop(), []):
            if supergroup not in visited:
                visited.add(supergroup)
                reachable.append(supergroup)
                stack.append(supergroup)
    return reachable


class Groups:
    """Group records and membership graph."""

    def create(self, tr: Transaction, name: str) -> int:
        db_group = DBGroup(name=name)
        tr.session.add(db_group)
        tr.session.flush()
        idx: int = db_group.idx
        return idx

    def delete(self, tr: Transaction, group_idx: int) -> int:
        deleted = tr.session.query(DBGroup) \
            .filter(DBGroup.idx == group_idx) \
            .delete(synchronize_session=False)
        if not deleted:
            raise NoSuchEntry('No such group')
        return group_idx

    def add_group_relation(self, tr: Transaction, subgroup_idx: int,
                           supergroup_idx: int) -> int:
        """Make ``subgroup_idx`` a member of ``supergroup_idx``."""
        db_relation = DBGroupRelation(subgroup_idx=subgroup_idx,
                                      supergroup_idx=supergroup_idx)
        tr.session.add(db_relation)
        tr.session.flush()
        idx: int = db_relation.idx
        return idx

    def delete_group_relation(self, tr: Transaction,
                              relation_idx: int) -> int:
        deleted = tr.session.query(DBGroupRelation) \
            .filter(DBGroupRelation.idx == relation_idx) \
            .delete(synchronize_session=False)
        if not deleted:
            raise NoSuchEntry('No such group relation')
        return relation_idx

    def get_group_reachable_array(self, tr: Transaction,
                                  group_idx: int) -> List[int]:
        """Groups whose members include every member of ``group_idx``."""
        edges = tr.session.query(DBGroupRelation.subgroup_idx,
                                 DBGroupRelation.supergroup_idx).all()
        return reachable_groups(group_idx, edges)
