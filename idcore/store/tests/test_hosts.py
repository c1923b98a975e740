"""Tests for :mod:`idcore.store.hosts` and :mod:`idcore.store.permissions`."""

from unittest import TestCase

from hypothesis import given
from hypothesis import strategies as st

from ... import domain
from .. import hosts
from ..exceptions import AuthorizationFailed, NoSuchEntry
from ..hosts import HostAccess
from .test_users import add_raw_user
from .util import temporary_db


class TestClassifyHostAccess(TestCase):
    """The access rule depends on the host group alone."""

    host = domain.Host(idx=1, name='login', host='10.0.0.1')

    def test_no_host_group(self):
        self.assertEqual(hosts.classify_host_access(self.host, None),
                         (HostAccess.UNRESTRICTED, None))

    def test_group_without_permission(self):
        host = self.host._replace(host_group_idx=3)
        group = domain.HostGroup(idx=3, name='lab')
        self.assertEqual(hosts.classify_host_access(host, group),
                         (HostAccess.GROUP_ONLY, None))

    def test_group_with_permission(self):
        host = self.host._replace(host_group_idx=3)
        group = domain.HostGroup(idx=3, name='lab', required_permission_idx=7)
        self.assertEqual(hosts.classify_host_access(host, group),
                         (HostAccess.PERMISSION_REQUIRED, 7))

    @given(host_group_idx=st.one_of(st.none(), st.integers(1, 5)),
           required_permission_idx=st.one_of(st.none(), st.integers(1, 5)))
    def test_permission_given_only_when_required(self, host_group_idx,
                                                 required_permission_idx):
        """A permission comes back exactly for permission-guarded hosts."""
        host = self.host._replace(host_group_idx=host_group_idx)
        group = None
        if host_group_idx is not None:
            group = domain.HostGroup(host_group_idx, 'lab',
                                     required_permission_idx)
        access, permission_idx = hosts.classify_host_access(host, group)
        self.assertEqual(access is HostAccess.PERMISSION_REQUIRED,
                         permission_idx is not None)


class TestNormalizeAddress(TestCase):
    def test_ipv4(self):
        self.assertEqual(hosts.normalize_address(' 192.168.0.1 '),
                         '192.168.0.1')

    def test_ipv6(self):
        self.assertEqual(hosts.normalize_address('::0001'), '::1')
        self.assertEqual(hosts.normalize_address('2001:DB8:0:0::1'),
                         '2001:db8::1')

    def test_invalid(self):
        with self.assertRaises(ValueError):
            hosts.normalize_address('not-an-address')


class TestHostLookup(TestCase):
    def test_lookup_by_any_spelling(self):
        """Lookup matches the address, not the text it was stored as."""
        with temporary_db() as model:
            with model.transaction() as tr:
                idx = model.hosts.add_host(tr, 'v6', '::0001')
            with model.transaction() as tr:
                host = model.hosts.get_host_by_inet(tr, '::1')
        self.assertEqual(host, domain.Host(idx, 'v6', '::1', None))

    def test_unknown_host(self):
        with temporary_db() as model:
            with model.transaction() as tr:
                model.hosts.add_host(tr, 'login', '10.0.0.1')
                with self.assertRaises(NoSuchEntry):
                    model.hosts.get_host_by_inet(tr, '10.0.0.2')

    def test_invalid_address(self):
        with temporary_db() as model:
            with model.transaction() as tr:
                with self.assertRaises(NoSuchEntry):
                    model.hosts.get_host_by_inet(tr, '10.0.0')

    def test_missing_entries(self):
        with temporary_db() as model:
            with model.transaction() as tr:
                with self.assertRaises(NoSuchEntry):
                    model.hosts.delete_host(tr, 1)
                with self.assertRaises(NoSuchEntry):
                    model.hosts.delete_host_group(tr, 1)
                with self.assertRaises(NoSuchEntry):
                    model.hosts.set_host_group_permission(tr, 1, None)
                with self.assertRaises(NoSuchEntry):
                    model.hosts.add_host_to_group(tr, 1, None)
                with self.assertRaises(NoSuchEntry):
                    model.hosts.get_host_group_by_idx(tr, 1)


class TestAuthorizeUserByHost(TestCase):
    """A user reaches a host through the group graph."""

    def setUp(self):
        self._db = temporary_db()
        self.model = self._db.__enter__()
        with self.model.transaction() as tr:
            self.member = add_raw_user(tr, 10, 'member')
            self.outsider = add_raw_user(tr, 11, 'outsider')
            self.loner = add_raw_user(tr, 12, 'loner')

            staff = self.model.groups.create(tr, 'staff')
            admins = self.model.groups.create(tr, 'admins')
            others = self.model.groups.create(tr, 'others')
            self.model.groups.add_group_relation(tr, staff, admins)
            self.model.users.add_user_membership(tr, self.member, staff)
            self.model.users.add_user_membership(tr, self.outsider, others)

            self.permission = self.model.permissions.create(tr, 'ssh')
            self.model.permissions.add_permission_requirement(
                tr, admins, self.permission)

            self.free_host = self.model.hosts.add_host(tr, 'free', '10.0.0.1')
            self.group_host = self.model.hosts.add_host(tr, 'group',
                                                        '10.0.0.2')
            self.guarded_host = self.model.hosts.add_host(tr, 'guarded',
                                                          '10.0.0.3')
            open_group = self.model.hosts.add_host_group(tr, 'open')
            guarded_group = self.model.hosts.add_host_group(tr, 'guarded')
            self.model.hosts.set_host_group_permission(tr, guarded_group,
                                                       self.permission)
            self.model.hosts.add_host_to_group(tr, self.group_host,
                                               open_group)
            self.model.hosts.add_host_to_group(tr, self.guarded_host,
                                               guarded_group)

    def tearDown(self):
        self._db.__exit__(None, None, None)

    def authorize(self, user_idx, address):
        with self.model.transaction() as tr:
            host = self.model.hosts.get_host_by_inet(tr, address)
            return self.model.hosts.authorize_user_by_host(tr, user_idx, host)

    def test_host_without_group_admits_anyone(self):
        self.assertEqual(self.authorize(self.loner, '10.0.0.1'),
                         HostAccess.UNRESTRICTED)

    def test_group_without_permission_admits_anyone(self):
        self.assertEqual(self.authorize(self.outsider, '10.0.0.2'),
                         HostAccess.GROUP_ONLY)

    def test_permission_through_supergroup(self):
        """Membership in a subgroup is enough to hold the permission."""
        self.assertEqual(self.authorize(self.member, '10.0.0.3'),
                         HostAccess.PERMISSION_REQUIRED)

    def test_permission_not_held(self):
        with self.assertRaises(AuthorizationFailed):
            self.authorize(self.outsider, '10.0.0.3')

    def test_user_without_memberships(self):
        with self.assertRaises(AuthorizationFailed):
            self.authorize(self.loner, '10.0.0.3')

    def test_lifting_the_requirement(self):
        with self.model.transaction() as tr:
            host = self.model.hosts.get_host_by_inet(tr, '10.0.0.3')
            self.model.hosts.set_host_group_permission(
                tr, host.host_group_idx, None)
        self.assertEqual(self.authorize(self.outsider, '10.0.0.3'),
                         HostAccess.GROUP_ONLY)

    def test_deleting_the_host_group(self):
        """Hosts of a deleted group are no longer restricted."""
        with self.model.transaction() as tr:
            host = self.model.hosts.get_host_by_inet(tr, '10.0.0.3')
            self.model.hosts.delete_host_group(tr, host.host_group_idx)
        self.assertEqual(self.authorize(self.outsider, '10.0.0.3'),
                         HostAccess.UNRESTRICTED)


class TestPermissions(TestCase):
    def test_permission_granted_to_no_group(self):
        with temporary_db() as model:
            with model.transaction() as tr:
                user = add_raw_user(tr, 10, 'alice')
                group = model.groups.create(tr, 'staff')
                model.users.add_user_membership(tr, user, group)
                permission = model.permissions.create(tr, 'ssh')
                self.assertFalse(model.permissions.check_user_have_permission(
                    tr, user, permission))

    def test_direct_grant(self):
        with temporary_db() as model:
            with model.transaction() as tr:
                user = add_raw_user(tr, 10, 'alice')
                group = model.groups.create(tr, 'staff')
                model.users.add_user_membership(tr, user, group)
                permission = model.permissions.create(tr, 'ssh')
                model.permissions.add_permission_requirement(tr, group,
                                                             permission)
                self.assertTrue(model.permissions.check_user_have_permission(
                    tr, user, permission))

    def test_grant_to_subgroup_does_not_flow_upward(self):
        """Members of a supergroup do not inherit a subgroup's grants."""
        with temporary_db() as model:
            with model.transaction() as tr:
                user = add_raw_user(tr, 10, 'alice')
                sub = model.groups.create(tr, 'sub')
                sup = model.groups.create(tr, 'sup')
                model.groups.add_group_relation(tr, sub, sup)
                model.users.add_user_membership(tr, user, sup)
                permission = model.permissions.create(tr, 'ssh')
                model.permissions.add_permission_requirement(tr, sub,
                                                             permission)
                self.assertFalse(model.permissions.check_user_have_permission(
                    tr, user, permission))
