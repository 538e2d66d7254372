"""Tests for :mod:`rms.commands`."""

import hashlib
from unittest import TestCase

from hypothesis import given, strategies as st

from .. import commands
from ..models import DBCommand
from .util import temporary_db


class TestCommand(TestCase):
    """:class:`.Command` is an immutable, hash-identified right."""

    def test_hash(self):
        """The hash is the SHA-1 digest of the text."""
        command = commands.Command('create user')
        self.assertEqual(command.text, 'create user')
        self.assertEqual(command.hash,
                         hashlib.sha1(b'create user').digest())
        self.assertEqual(len(command.hash), 20)

    @given(st.text())
    def test_equal_text_equal_command(self, text):
        """Commands with the same text are equal and hash alike."""
        self.assertEqual(commands.Command(text), commands.Command(text))
        self.assertEqual(hash(commands.Command(text)),
                         hash(commands.Command(text)))

    def test_different_text(self):
        self.assertNotEqual(commands.Command('create user'),
                            commands.Command('remove user'))

    def test_immutable(self):
        """Attributes cannot be reassigned."""
        command = commands.Command('create user')
        with self.assertRaises(AttributeError):
            command.text = 'remove user'

    def test_as_command(self):
        command = commands.Command('create user')
        self.assertIs(commands.as_command(command), command)
        self.assertEqual(commands.as_command('create user'), command)
        self.assertEqual(str(command), 'create user')


class TestEnsurePersisted(TestCase):
    """:meth:`.Command.ensure_persisted` is an idempotent insert."""

    def test_insert_twice(self):
        """The command dictionary gets exactly one row."""
        command = commands.Command('member of administrators')
        with temporary_db() as session:
            command.ensure_persisted(session)
            command.ensure_persisted(session)
            rows = session.query(DBCommand).all()
            self.assertEqual(len(rows), 1)
            self.assertEqual(rows[0].hash, command.hash)
            self.assertEqual(rows[0].command, 'member of administrators')
