"""Tests for :mod:`rms.service`."""

import gc
import threading
import warnings
from unittest import TestCase

from hypothesis import given, settings, strategies as st
from mimesis import Person

from .. import exceptions
from ..models import DBUser
from ..service import Registry
from ..users import User
from .util import Clock, temporary_db

person = Person()


class TestIdentityCache(TestCase):
    """One live instance per user."""

    def test_same_instance(self):
        with temporary_db() as session:
            registry = Registry(session)
            created = registry.create_user({'username': 'same@example.com'})

            self.assertIs(registry.get_user(created.id), created)
            self.assertIs(registry.get_user('same@example.com'), created)
            self.assertIs(registry.find_user(created.id), created)
            self.assertIs(registry.find_user(str(created.id)), created)
            self.assertIs(registry.find_user('same@example.com'), created)

    def test_lookup_before_cached(self):
        """Two lookups of an uncached user give the same instance."""
        with temporary_db() as session:
            user_id = Registry(session).create_user(
                {'username': 'cold@example.com'}
            ).id
            registry = Registry(session)
            first = registry.find_user('cold@example.com')
            self.assertIs(registry.get_user(user_id), first)

    def test_dead_entries_are_pruned(self):
        with temporary_db() as session:
            registry = Registry(session)
            user_id = registry.create_user({'username': 'p@example.com'}).id
            gc.collect()
            self.assertEqual(registry._live(), [])

            again = registry.get_user(user_id)
            self.assertEqual(again.username, 'p@example.com')
            self.assertEqual(registry._live(), [again])

    def test_removed_entries_are_pruned(self):
        with temporary_db() as session:
            registry = Registry(session)
            user = registry.create_user({'username': 'rm@example.com'})
            user.mark_as_removed()
            self.assertEqual(registry._live(), [])


class TestFindUser(TestCase):
    """:meth:`.Registry.find_user` returns None instead of raising."""

    def test_not_found(self):
        with temporary_db() as session:
            registry = Registry(session)
            self.assertIsNone(registry.find_user(42))
            self.assertIsNone(registry.find_user('42'))
            self.assertIsNone(registry.find_user('nobody@example.com'))
            self.assertIsNone(registry.find_user('not an email'))

    def test_empty(self):
        """Empty input does not touch the database."""
        registry = Registry(session=None)
        for who in (None, 0, '', '0', False):
            self.assertIsNone(registry.find_user(who))

    def test_username_case(self):
        """A cached user is found whatever the case of the username."""
        with temporary_db() as session:
            registry = Registry(session)
            user = registry.create_user({'username': 'alice@example.com'})
            self.assertIs(registry.find_user('Alice@Example.com'), user)
            self.assertIs(registry.get_user('ALICE@EXAMPLE.COM'), user)

    def test_removed(self):
        """Removed users are not found, neither by ID nor by username."""
        with temporary_db() as session:
            registry = Registry(session)
            user = registry.create_user({'username': 'rm@example.com'})
            user_id = user.id
            user.mark_as_removed()
            self.assertIsNone(registry.find_user('rm@example.com'))
            self.assertIsNone(registry.find_user(user_id))
            self.assertEqual(registry.get_user(user_id).id, user_id)


class TestCreateUser(TestCase):

    @settings(max_examples=3, deadline=None)
    @given(st.text(min_size=6, max_size=20))
    def test_password(self, password):
        """A created user accepts its password and nothing else."""
        with temporary_db() as session:
            user = Registry(session).create_user({
                'username': person.email(domains=['example.com']),
                'password': password,
            })
            self.assertTrue(user.validate_password(password))
            self.assertFalse(user.validate_password(password + 'x'))

    def test_fields(self):
        with temporary_db() as session:
            user = Registry(session).create_user({
                'username': 'fields@example.com',
                'lang': 'de-at',
                'can_login': False,
            })
            reloaded = User(session, user.id)
            self.assertEqual(reloaded.lang, 'de_AT')
            self.assertFalse(reloaded.can_login)
            self.assertIsNone(reloaded.password)

    def test_unknown_field(self):
        with temporary_db() as session:
            with self.assertRaises(exceptions.InvalidArgument):
                Registry(session).create_user({'username': 'u@example.com',
                                               'shoeSize': 44})

    def test_duplicate(self):
        with temporary_db() as session:
            registry = Registry(session)
            registry.create_user({'username': 'dup@example.com'})
            with warnings.catch_warnings():
                warnings.simplefilter('ignore', RuntimeWarning)
                with self.assertRaises(exceptions.Conflict):
                    registry.create_user({'username': 'dup@example.com'})


class TestRemoveUser(TestCase):

    def test_remove(self):
        with temporary_db() as session:
            registry = Registry(session)
            user = registry.create_user({'username': 'bye@example.com'})
            user_id = user.id
            registry.remove_user(user)

            self.assertIsNone(registry.find_user('bye@example.com'))
            self.assertIsNone(registry.find_user(user_id))
            with self.assertRaises(exceptions.NotFound):
                registry.get_user(user_id)

    def test_remove_by_username(self):
        with temporary_db() as session:
            registry = Registry(session)
            registry.create_user({'username': 'bye@example.com'})
            registry.remove_user('bye@example.com')
            self.assertIsNone(registry.find_user('bye@example.com'))

    def test_remove_through_user(self):
        with temporary_db() as session:
            registry = Registry(session)
            user = registry.create_user({'username': 'self@example.com'})
            user.remove()
            self.assertIsNone(registry.find_user('self@example.com'))

    def test_orphan(self):
        """Removing a user the registry did not hand out is reported."""
        with temporary_db() as session:
            registry = Registry(session)
            user_id = registry.create_user({'username': 'o@example.com'}).id
            orphan = User(session, user_id)
            with self.assertWarns(RuntimeWarning):
                registry.remove_user(orphan)
            self.assertIsNone(registry.find_user(user_id))


class TestFindByRightAndMeta(TestCase):

    def test_find_user_ids_by_right(self):
        with temporary_db() as session:
            registry = Registry(session)
            a = registry.create_user({'username': 'a@example.com'})
            b = registry.create_user({'username': 'b@example.com'})
            c = registry.create_user({'username': 'c@example.com'})
            c.grant('edit pages')
            a.grant('edit pages', 'publish pages')
            b.grant('read pages')

            self.assertEqual(
                registry.find_user_ids_by_right('edit pages',
                                                'publish pages'),
                [a.id, c.id]
            )
            self.assertEqual(registry.find_user_ids_by_right(), [])

    def test_search_meta(self):
        with temporary_db() as session:
            registry = Registry(session)
            a = registry.create_user({'username': 'a@example.com'})
            b = registry.create_user({'username': 'b@example.com'})
            a.meta['team'] = 'red'
            b.meta['team'] = 'red'

            self.assertEqual(registry.search_meta('team', 'red'), [a, b])
            self.assertIs(registry.search_meta('team', 'red', first=True), a)
            self.assertIsNone(registry.search_meta('team', 'blue',
                                                   first=True))


class TestRecoveryHash(TestCase):
    """Recovery hashes are bound to the password and expire."""

    def test_round_trip(self):
        clock = Clock()
        with temporary_db() as session:
            registry = Registry(session, clock=clock)
            user = registry.create_user({'username': 'lost@example.com',
                                         'password': 'secret1'})
            recovery_hash = registry.gen_recovery_hash(user)
            self.assertIs(registry.find_user_by_recovery_hash(recovery_hash),
                          user)

            clock.advance(3601)
            self.assertIsNone(
                registry.find_user_by_recovery_hash(recovery_hash)
            )

    def test_password_change_invalidates(self):
        with temporary_db() as session:
            registry = Registry(session, clock=Clock())
            user = registry.create_user({'username': 'lost@example.com',
                                         'password': 'secret1'})
            recovery_hash = registry.gen_recovery_hash(user, lifetime=60)
            user.set_password('secret2')
            user.save()
            self.assertIsNone(
                registry.find_user_by_recovery_hash(recovery_hash)
            )

    def test_garbage(self):
        registry = Registry(session=None, clock=Clock())
        for garbage in ('', 'abc', '0-0-0', 'a-b', 'x-y-z-w', '1-0-abc'):
            self.assertIsNone(registry.find_user_by_recovery_hash(garbage))

    def test_configured_lifetime(self):
        clock = Clock()
        with temporary_db() as session:
            registry = Registry(session, clock=clock, recovery_lifetime=60)
            user = registry.create_user({'username': 'lost@example.com',
                                         'password': 'secret1'})
            recovery_hash = registry.gen_recovery_hash(user)
            clock.advance(60)
            self.assertIs(registry.find_user_by_recovery_hash(recovery_hash),
                          user)
            clock.advance(1)
            self.assertIsNone(
                registry.find_user_by_recovery_hash(recovery_hash)
            )


class TestStorageFailure(TestCase):
    """Driver errors on reads surface as :class:`.StorageError`."""

    def test_unreadable_users(self):
        with temporary_db() as session:
            registry = Registry(session)
            user_id = registry.create_user({'username': 'r@example.com'}).id
            session.commit()
            DBUser.__table__.drop(session.get_bind())
            with self.assertRaises(exceptions.StorageError):
                registry.find_user(user_id + 1)
            with self.assertRaises(exceptions.StorageError):
                registry.find_user('nobody@example.com')
            with self.assertRaises(exceptions.StorageError):
                registry.get_user(user_id + 1)


class TestConcurrentRegistration(TestCase):
    """Threads registering the same user end up with one instance."""

    def test_one_instance(self):
        registry = Registry(session=None)
        record = {'id': 5, 'username': 'twin@example.com'}
        candidates = [User(None, record) for _ in range(16)]
        results = []

        def register(user):
            results.append(registry._register(user))

        threads = [threading.Thread(target=register, args=(user,))
                   for user in candidates]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len({id(user) for user in results}), 1)
        self.assertEqual(len(registry._live()), 1)
