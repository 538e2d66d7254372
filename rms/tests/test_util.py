"""Tests for :mod:`rms.util`."""

from datetime import datetime
from unittest import TestCase

from hypothesis import given, strategies as st
from pytz import UTC

from .. import exceptions, util


class TestBase36(TestCase):

    @given(st.integers(min_value=0))
    def test_round_trip(self, number):
        self.assertEqual(util.from_base36(util.to_base36(number)), number)

    def test_known_values(self):
        self.assertEqual(util.to_base36(0), '0')
        self.assertEqual(util.to_base36(35), 'z')
        self.assertEqual(util.to_base36(36), '10')
        self.assertEqual(util.to_base36(35, 3), '00z')
        self.assertEqual(util.to_base36(0, 2), '00')
        self.assertEqual(util.to_base36(2 ** 48 - 1, 10), '2rrvthnxtr')

    def test_malformed(self):
        """Anything that is not lowercase base 36 decodes to 0."""
        for value in (None, '', 'ABC', '-1', '1.5', 'z z', '12\n'):
            self.assertEqual(util.from_base36(value), 0)

    def test_negative(self):
        with self.assertRaises(exceptions.InvalidArgument):
            util.to_base36(-1)


class TestPasswords(TestCase):

    def test_check_password(self):
        encrypted = util.hash_password('secret1')
        util.check_password('secret1', encrypted)
        with self.assertRaises(exceptions.Unauthorized):
            util.check_password('secret2', encrypted)

    def test_salted(self):
        """Hashing the same password twice gives different hashes."""
        self.assertNotEqual(util.hash_password('secret1'),
                            util.hash_password('secret1'))

    def test_malformed(self):
        for encrypted in ('', 'abc', 'bm90IGEgaGFzaA==', 'ünïcode'):
            with self.assertRaises(exceptions.Unauthorized):
                util.check_password('secret1', encrypted)


class TestValidation(TestCase):

    def test_email(self):
        for value in ('jane.doe+rms@example.co.uk', 'jos\u00e9@example.com'):
            self.assertTrue(util.is_valid_email(value))
        for value in ('jane', 'jane@', '@example.com', 'jane@example',
                      'jane@example.com\n', None, 42,
                      'x' * 250 + '@example.com', 'a..b@example.com',
                      '.a@example.com', 'a.@example.com', 'a@-x-.com'):
            self.assertFalse(util.is_valid_email(value))

    def test_lang(self):
        self.assertEqual(util.normalize_lang('pt-br'), 'pt_BR')
        self.assertEqual(util.normalize_lang('EN_gb'), 'en_GB')
        for value in ('en', 'xx_US', 'en_XX', 'en_US_x', ''):
            with self.assertRaises(exceptions.InvalidArgument):
                util.normalize_lang(value)


class TestTime(TestCase):

    def test_epoch(self):
        moment = datetime(2024, 3, 11, 12, 0, tzinfo=UTC)
        self.assertEqual(util.from_epoch(util.epoch(moment)), moment)
        self.assertIsInstance(util.now(), int)
