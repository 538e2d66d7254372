"""Tests for :mod:`rms.meta`."""

from unittest import TestCase, mock

from .. import exceptions
from ..meta import Meta, encode
from ..models import DBMeta, DBUser
from .util import temporary_db


def _add_user(session, username='meta@example.com'):
    db_user = DBUser(username=username, created=1, modified=1)
    session.add(db_user)
    session.commit()
    return db_user.id


class TestMeta(TestCase):
    """Values are JSON, cached, and None means absent."""

    def test_set_and_get(self):
        with temporary_db() as session:
            user_id = _add_user(session)
            meta = Meta(session, lambda: user_id)
            meta['profile'] = {'givenName': 'Jane', 'tags': [1, 2]}

            fresh = Meta(session, lambda: user_id)
            self.assertEqual(fresh['profile'],
                             {'givenName': 'Jane', 'tags': [1, 2]})
            self.assertIn('profile', fresh)

    def test_missing_key(self):
        """A miss is None, and is cached."""
        with temporary_db() as session:
            user_id = _add_user(session)
            meta = Meta(session, lambda: user_id)
            self.assertIsNone(meta.get('nothing'))
            with mock.patch.object(session, 'query') as query:
                self.assertIsNone(meta.get('nothing'))
                query.assert_not_called()

    def test_set_none_deletes(self):
        with temporary_db() as session:
            user_id = _add_user(session)
            meta = Meta(session, lambda: user_id)
            meta['picture'] = 'https://example.com/me.png'
            meta['picture'] = None
            self.assertIsNone(meta['picture'])
            self.assertEqual(session.query(DBMeta).count(), 0)

    def test_delete_missing(self):
        """Deleting a key that is not there is fine."""
        with temporary_db() as session:
            user_id = _add_user(session)
            meta = Meta(session, lambda: user_id)
            del meta['nothing']
            self.assertIsNone(meta['nothing'])

    def test_without_user_id(self):
        """Reads give None, writes are refused."""
        with temporary_db() as session:
            meta = Meta(session, lambda: None)
            self.assertIsNone(meta['anything'])
            with self.assertRaises(exceptions.InvalidState):
                meta['anything'] = 1
            with self.assertRaises(exceptions.InvalidState):
                del meta['anything']


class TestSearchByValue(TestCase):
    """:meth:`.Meta.search_by_value` compares serialized values."""

    def test_search(self):
        with temporary_db() as session:
            first = _add_user(session, 'first@example.com')
            second = _add_user(session, 'second@example.com')
            third = _add_user(session, 'third@example.com')
            Meta(session, lambda: third)['team'] = {'name': 'red'}
            Meta(session, lambda: first)['team'] = {'name': 'red'}
            Meta(session, lambda: second)['team'] = {'name': 'blue'}

            self.assertEqual(
                Meta.search_by_value(session, 'team', {'name': 'red'}),
                [first, third]
            )
            self.assertEqual(
                Meta.search_by_value(session, 'team', {'name': 'red'},
                                     limit=1),
                [first]
            )
            self.assertEqual(
                Meta.search_by_value(session, 'team', {'name': 'green'}),
                []
            )

    def test_encode_is_stable(self):
        """Key order does not matter."""
        self.assertEqual(encode({'a': 1, 'b': 2}), encode({'b': 2, 'a': 1}))
