"""Defines identity concepts shared by the engine and its callers."""

from typing import Dict, List, NamedTuple, Optional, Union
from enum import Enum


class Language(str, Enum):
    """Preferred language of an account."""

    KO = 'ko'
    EN = 'en'


class User(NamedTuple):
    """An account in the identity store."""

    idx: int
    """Stable identity of the account."""

    username: Optional[str]
    """Login name. Accounts without one are not published to the directory."""

    name: str
    """Display name."""

    uid: Optional[int]
    """POSIX numeric user id."""

    shell: Optional[str]
    preferred_language: Optional[Language] = None


class UserMembership(NamedTuple):
    """A direct membership of a user in a group."""

    user_idx: int
    group_idx: int


class Host(NamedTuple):
    """A named host, optionally restricted by a host group."""

    idx: int
    name: str
    host: str
    """Normalized network address."""

    host_group_idx: Optional[int] = None


class HostGroup(NamedTuple):
    """A group of hosts sharing an access requirement."""

    idx: int
    name: str
    required_permission_idx: Optional[int] = None


class EmailAddress(NamedTuple):
    """The two halves of an email address."""

    local: str
    domain: str


POSIX_ACCOUNT_OBJECT_CLASS = ['top', 'account', 'posixAccount']
"""Object classes of every projected entry (RFC 2307)."""

Attribute = Union[str, int, List[str]]


class PosixAccount(NamedTuple):
    """A directory entry for an account, in posixAccount schema."""

    dn: str
    attributes: Dict[str, Attribute]

    @property
    def username(self) -> str:
        """The ``uid`` attribute of the entry."""
        username: str = self.attributes['uid']  # type: ignore
        return username


class Skipped(NamedTuple):
    """An account left out of the directory projection."""

    user_idx: int
    reason: str
