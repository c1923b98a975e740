"""Database models."""

from datetime import datetime
from typing import Any, Optional

from pytz import UTC
from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, \
    String, false, text
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.types import TypeDecorator

Base = declarative_base()


class UTCDateTime(TypeDecorator):
    """
    A timestamp that is always handed out UTC-aware.

    Values are stored without a zone (as UTC) so that SQLite and PostgreSQL
    behave the same way.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime],
                           dialect: Any) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError('Naive datetimes are not accepted')
        return value.astimezone(UTC).replace(tzinfo=None)

    def process_result_value(self, value: Optional[datetime],
                             dialect: Any) -> Optional[datetime]:
        if value is None:
            return None
        return UTC.localize(value)


class DBUser(Base):  # type: ignore
    """
    Accounts.

    +--------------------+--------------+------+-----+---------+
    | Field              | Type         | Null | Key | Default |
    +--------------------+--------------+------+-----+---------+
    | idx                | integer      | NO   | PRI |         |
    | username           | varchar(32)  | YES  | UNI | NULL    |
    | name               | varchar(128) | NO   |     |         |
    | uid                | integer      | YES  | UNI | NULL    |
    | shell              | varchar(128) | YES  |     | NULL    |
    | preferred_language | language     | NO   |     | 'en'    |
    | activated          | boolean      | NO   |     | false   |
    | password_digest    | varchar(512) | YES  |     | NULL    |
    | last_login_at      | timestamp    | YES  |     | NULL    |
    +--------------------+--------------+------+-----+---------+
    """

    __tablename__ = 'users'

    idx = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(32), unique=True, index=True)
    name = Column(String(128), nullable=False)
    uid = Column(Integer, unique=True, index=True)
    shell = Column(String(128))
    preferred_language = Column(Enum('ko', 'en', name='language'),
                                nullable=False, server_default=text("'en'"))
    activated = Column(Boolean, nullable=False, default=False,
                       server_default=false())
    password_digest = Column(String(512))
    last_login_at = Column(UTCDateTime)


class DBGroup(Base):  # type: ignore
    __tablename__ = 'groups'

    idx = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(128), nullable=False)


class DBGroupRelation(Base):  # type: ignore
    """``subgroup`` is a member of ``supergroup``."""

    __tablename__ = 'group_relations'

    idx = Column(Integer, primary_key=True, autoincrement=True)
    subgroup_idx = Column(ForeignKey('groups.idx', ondelete='CASCADE'),
                          nullable=False, index=True)
    supergroup_idx = Column(ForeignKey('groups.idx', ondelete='CASCADE'),
                            nullable=False, index=True)


class DBUserMembership(Base):  # type: ignore
    """Direct group memberships. Duplicate pairs are permitted."""

    __tablename__ = 'user_memberships'

    idx = Column(Integer, primary_key=True, autoincrement=True)
    user_idx = Column(ForeignKey('users.idx', ondelete='CASCADE'),
                      nullable=False, index=True)
    group_idx = Column(ForeignKey('groups.idx', ondelete='CASCADE'),
                       nullable=False, index=True)

    user = relationship('DBUser')
    group = relationship('DBGroup')


class DBPermission(Base):  # type: ignore
    __tablename__ = 'permissions'

    idx = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(128), nullable=False)


class DBPermissionRequirement(Base):  # type: ignore
    """Members of ``group`` hold ``permission``."""

    __tablename__ = 'permission_requirements'

    idx = Column(Integer, primary_key=True, autoincrement=True)
    group_idx = Column(ForeignKey('groups.idx', ondelete='CASCADE'),
                       nullable=False, index=True)
    permission_idx = Column(ForeignKey('permissions.idx', ondelete='CASCADE'),
                            nullable=False, index=True)


class DBHostGroup(Base):  # type: ignore
    __tablename__ = 'host_groups'

    idx = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(128), nullable=False)
    required_permission = Column(ForeignKey('permissions.idx',
                                            ondelete='SET NULL'))


class DBHost(Base):  # type: ignore
    __tablename__ = 'hosts'

    idx = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(128), nullable=False)
    host = Column(String(64), nullable=False, unique=True, index=True)
    """Address in :func:`ipaddress.ip_address` canonical form."""
    host_group = Column(ForeignKey('host_groups.idx', ondelete='SET NULL'))


class DBPasswordChangeToken(Base):  # type: ignore
    """
    Password change tokens, at most one per user.

    ``resend_count`` counts reissues since the last expiry.
    """

    __tablename__ = 'password_change_tokens'

    idx = Column(Integer, primary_key=True, autoincrement=True)
    user_idx = Column(ForeignKey('users.idx', ondelete='CASCADE'),
                      nullable=False, unique=True)
    token = Column(String(128), nullable=False, unique=True, index=True)
    expires = Column(UTCDateTime, nullable=False)
    resend_count = Column(Integer, nullable=False, default=0,
                          server_default=text('0'))


class DBEmailAddress(Base):  # type: ignore
    __tablename__ = 'email_addresses'

    idx = Column(Integer, primary_key=True, autoincrement=True)
    owner_idx = Column(ForeignKey('users.idx', ondelete='CASCADE'),
                       index=True)
    address_local = Column(String(128), nullable=False)
    address_domain = Column(String(128), nullable=False)


class DBEmailVerificationToken(Base):  # type: ignore
    __tablename__ = 'email_verification_tokens'

    idx = Column(Integer, primary_key=True, autoincrement=True)
    email_idx = Column(ForeignKey('email_addresses.idx', ondelete='CASCADE'),
                       nullable=False, unique=True)
    token = Column(String(128), nullable=False, unique=True, index=True)
    expires = Column(UTCDateTime, nullable=False)
    resend_count = Column(Integer, nullable=False, default=0,
                          server_default=text('0'))


class DBStudentNumber(Base):  # type: ignore
    __tablename__ = 'student_numbers'

    idx = Column(Integer, primary_key=True, autoincrement=True)
    student_number = Column(String(32), nullable=False, unique=True)
    owner_idx = Column(ForeignKey('users.idx', ondelete='CASCADE'),
                       nullable=False, index=True)
