"""Tests for :mod:`idcore.store.posix`."""

from unittest import TestCase, mock

from ... import domain
from .. import passwords, posix
from ..exceptions import NoSuchEntry, NotProjectable
from .test_users import add_raw_user
from .util import TEST_CONFIG, temporary_db


class TestToPosixAccount(TestCase):
    """Mapping a single account to a directory entry."""

    def test_entry(self):
        user = domain.User(idx=1, username='alice', name='Alice Kim',
                           uid=10001, shell='/bin/zsh')
        entry = posix.to_posix_account(TEST_CONFIG, user)
        self.assertEqual(entry.dn, 'cn=alice,ou=users,dc=example,dc=com')
        self.assertEqual(entry.attributes, {
            'uid': 'alice',
            'cn': 'alice',
            'gecos': 'Alice Kim',
            'homeDirectory': '/home/alice',
            'loginShell': '/bin/zsh',
            'objectClass': ['top', 'account', 'posixAccount'],
            'uidNumber': 10001,
            'gidNumber': 2000,
        })
        self.assertEqual(entry.username, 'alice')

    def test_no_username(self):
        """The reason for leaving an account out is kept."""
        user = domain.User(idx=7, username=None, name='Nobody', uid=10,
                           shell='/bin/sh')
        skipped = posix.to_posix_account(TEST_CONFIG, user)
        self.assertEqual(skipped, domain.Skipped(7, 'account has no username'))

    def test_no_shell(self):
        user = domain.User(idx=7, username='nobody', name='Nobody', uid=10,
                           shell=None)
        self.assertIsInstance(posix.to_posix_account(TEST_CONFIG, user),
                              domain.Skipped)
        with self.assertRaises(NotProjectable):
            posix.require_posix_account(TEST_CONFIG, user)

    def test_project_partitions(self):
        users = [
            domain.User(1, 'alice', 'Alice', 10, '/bin/sh'),
            domain.User(2, None, 'Anonymous', 11, '/bin/sh'),
            domain.User(3, 'bob', 'Bob', 12, None),
            domain.User(4, 'carol', 'Carol', 13, '/bin/bash'),
        ]
        entries, skipped = posix.project(TEST_CONFIG, users)
        self.assertEqual([e.username for e in entries], ['alice', 'carol'])
        self.assertEqual([s.user_idx for s in skipped], [2, 3])


class TestPosixAccountCache(TestCase):
    """The cached projection tracks account writes."""

    def test_build_skips_unprojectable_accounts(self):
        """One bad account does not spoil the projection."""
        with temporary_db() as model:
            with model.transaction() as tr:
                add_raw_user(tr, 10, 'alice')
                add_raw_user(tr, 11, None)
                add_raw_user(tr, 12, 'bob', shell=None)
            with model.transaction() as tr:
                entries = model.users.get_all_as_posix_accounts(tr)
        self.assertEqual([e.username for e in entries], ['alice'])
        self.assertEqual(len(model.posix_accounts.skipped), 2)

    def test_consecutive_reads_are_identical(self):
        """Without writes in between, the cached entries are served."""
        with temporary_db() as model:
            with model.transaction() as tr:
                add_raw_user(tr, 10, 'alice')
                add_raw_user(tr, 11, 'bob')
            with model.transaction() as tr:
                first = model.users.get_all_as_posix_accounts(tr)
            with model.transaction() as tr:
                with mock.patch.object(model.users, 'get_all') as get_all:
                    second = model.users.get_all_as_posix_accounts(tr)
                    get_all.assert_not_called()
        self.assertEqual(first, second)

    def test_shell_change_updates_only_that_account(self):
        with temporary_db() as model:
            with model.transaction() as tr:
                alice = add_raw_user(tr, 10, 'alice')
                add_raw_user(tr, 11, 'bob')
            with model.transaction() as tr:
                before = model.users.get_all_as_posix_accounts(tr)
            with model.transaction() as tr:
                model.users.change_shell(tr, alice, '/bin/fish')
            with model.transaction() as tr:
                after = model.users.get_all_as_posix_accounts(tr)

        self.assertEqual(before[1], after[1])
        self.assertEqual(after[0].attributes['loginShell'], '/bin/fish')
        self.assertEqual(
            {k: v for k, v in before[0].attributes.items()
             if k != 'loginShell'},
            {k: v for k, v in after[0].attributes.items()
             if k != 'loginShell'},
        )

    @mock.patch.object(passwords, 'hash_password', return_value='$x$y$z')
    def test_create_and_delete_invalidate(self, mock_hash):
        with temporary_db() as model:
            with model.transaction() as tr:
                self.assertEqual(model.users.get_all_as_posix_accounts(tr),
                                 [])
            with model.transaction() as tr:
                idx = model.users.create(tr, 'alice', 'pw', 'Alice',
                                         '/bin/bash', 'en')
            with model.transaction() as tr:
                entries = model.users.get_all_as_posix_accounts(tr)
                self.assertEqual([e.username for e in entries], ['alice'])
            with model.transaction() as tr:
                model.users.delete(tr, idx)
            with model.transaction() as tr:
                self.assertEqual(model.users.get_all_as_posix_accounts(tr),
                                 [])

    def test_password_change_keeps_cache(self):
        with temporary_db() as model:
            with model.transaction() as tr:
                idx = add_raw_user(tr, 10, 'alice')
            with model.transaction() as tr:
                model.users.get_all_as_posix_accounts(tr)
            generation = model.posix_accounts.generation
            with model.transaction() as tr:
                model.users.change_password(tr, idx, 'newpassword')
            self.assertEqual(model.posix_accounts.generation, generation)

    def test_write_invalidates_again_on_commit(self):
        """A rebuild between the write and its commit is thrown away."""
        with temporary_db() as model:
            with model.transaction() as tr:
                idx = add_raw_user(tr, 10, 'alice')
            with model.transaction() as tr:
                model.users.change_shell(tr, idx, '/bin/fish')
                model.posix_accounts.get_or_build(
                    tr, lambda _: [domain.User(idx, 'alice', 'Alice', 10,
                                               '/bin/bash')]
                )
            with model.transaction() as tr:
                entries = model.users.get_all_as_posix_accounts(tr)
        self.assertEqual(entries[0].attributes['loginShell'], '/bin/fish')

    def test_rolled_back_write_does_not_stay_cached(self):
        """A build that saw an aborted write is dropped on rollback."""
        with temporary_db() as model:
            with model.transaction() as tr:
                idx = add_raw_user(tr, 10, 'alice')
            with self.assertRaises(RuntimeError):
                with model.transaction() as tr:
                    model.users.change_shell(tr, idx, '/bin/fish')
                    entries = model.users.get_all_as_posix_accounts(tr)
                    self.assertEqual(entries[0].attributes['loginShell'],
                                     '/bin/fish')
                    raise RuntimeError('abort')
            with model.transaction() as tr:
                entries = model.users.get_all_as_posix_accounts(tr)
                self.assertEqual(model.users.get_shell(tr, idx), '/bin/bash')
        self.assertEqual(entries[0].attributes['loginShell'], '/bin/bash')

    def test_build_racing_invalidation_is_not_stored(self):
        """Entries built before an invalidation never land in the cache."""
        cache = posix.PosixAccountCache(TEST_CONFIG)

        def load(tr):
            cache.invalidate()
            return [domain.User(1, 'alice', 'Alice', 10, '/bin/sh')]

        entries = cache.get_or_build(None, load)
        self.assertEqual(len(entries), 1)

        loaded = []

        def load_again(tr):
            loaded.append(True)
            return []

        self.assertEqual(cache.get_or_build(None, load_again), [])
        self.assertEqual(loaded, [True])

    def test_single_account_lookup(self):
        with temporary_db() as model:
            with model.transaction() as tr:
                add_raw_user(tr, 10, 'alice')
                add_raw_user(tr, 11, 'bob', shell=None)
                entry = model.users.get_by_username_as_posix_account(
                    tr, 'alice')
                self.assertEqual(entry.attributes['uidNumber'], 10)
                with self.assertRaises(NotProjectable):
                    model.users.get_by_username_as_posix_account(tr, 'bob')
                with self.assertRaises(NoSuchEntry):
                    model.users.get_by_username_as_posix_account(tr, 'carol')
