"""
RMS commands.

A command is a string made of a verb and an object, e.g. ``"create user"``,
``"remove user"`` or ``"member of administrators"``. Holding a command is
what it means for a user to have a right.
"""

from typing import Union
import hashlib
import logging

from sqlalchemy.orm.session import Session

from . import util
from .models import DBCommand

logger = logging.getLogger(__name__)


class Command(object):
    """An immutable permission token identified by the SHA-1 of its text."""

    __slots__ = ('text', 'hash')

    text: str
    hash: bytes

    def __init__(self, command: object) -> None:
        text = str(command)
        object.__setattr__(self, 'text', text)
        object.__setattr__(self, 'hash',
                           hashlib.sha1(text.encode('utf-8')).digest())

    def __setattr__(self, name: str, value: object) -> None:
        raise AttributeError(f'{type(self).__name__} is immutable')

    def ensure_persisted(self, session: Session) -> None:
        """
        Add this command to the command dictionary if it is not there yet.

        You don't need to call this directly; :meth:`.User.grant` does it
        before inserting the rights row that references the command.
        """
        with util.transaction(session):
            session.merge(DBCommand(hash=self.hash, command=self.text))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Command):
            return NotImplemented
        return self.hash == other.hash

    def __hash__(self) -> int:
        return hash(self.hash)

    def __str__(self) -> str:
        return self.text

    def __repr__(self) -> str:
        return f'Command({self.text!r})'


CommandLike = Union[str, Command]


def as_command(command: object) -> Command:
    """Coerce a string (or anything string-like) to a :class:`.Command`."""
    if isinstance(command, Command):
        return command
    return Command(command)


USERS = 'member of users'
"""Implicitly held by every user with a persisted id."""

GUESTS = 'member of guests'
"""Implicitly held by every user without a persisted id."""

ADMINISTRATORS = 'member of administrators'
