"""Configuration for the identity engine."""

import os
from typing import NamedTuple, Tuple

DATABASE_URI = os.environ.get('DATABASE_URI', 'sqlite:///idcore.db')
"""SQLAlchemy URI of the account database."""

LDAP_BASE_DN = os.environ.get('LDAP_BASE_DN', 'dc=example,dc=com')
LDAP_USERS_OU = os.environ.get('LDAP_USERS_OU', 'users')

POSIX_HOME_DIRECTORY_PREFIX = os.environ.get('POSIX_HOME_DIRECTORY_PREFIX',
                                             '/home')
POSIX_USER_GROUP_GID = int(os.environ.get('POSIX_USER_GROUP_GID', '2000'))
"""Primary group id shared by every projected account."""

POSIX_MIN_UID = int(os.environ.get('POSIX_MIN_UID', '10000'))
"""Smallest UID handed out to new accounts."""

PASSWORD_TOKEN_LIFETIME = int(os.environ.get('PASSWORD_TOKEN_LIFETIME',
                                             '86400'))
"""Seconds a password change token stays valid."""

EMAIL_TOKEN_LIFETIME = int(os.environ.get('EMAIL_TOKEN_LIFETIME', '86400'))

EMAIL_ALLOWED_DOMAINS = tuple(
    domain.strip() for domain
    in os.environ.get('EMAIL_ALLOWED_DOMAINS', 'snu.ac.kr').split(',')
    if domain.strip()
)
"""Domains for which address verification may be requested."""

LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


class Config(NamedTuple):
    """Settings consumed by :class:`idcore.model.Model`."""

    base_dn: str = LDAP_BASE_DN
    users_ou: str = LDAP_USERS_OU
    home_directory_prefix: str = POSIX_HOME_DIRECTORY_PREFIX
    user_group_gid: int = POSIX_USER_GROUP_GID
    min_uid: int = POSIX_MIN_UID
    password_token_lifetime: int = PASSWORD_TOKEN_LIFETIME
    email_token_lifetime: int = EMAIL_TOKEN_LIFETIME
    email_allowed_domains: Tuple[str, ...] = EMAIL_ALLOWED_DOMAINS

    @property
    def users_dn(self) -> str:
        """Base DN under which account entries are published."""
        return f'ou={self.users_ou},{self.base_dn}'
