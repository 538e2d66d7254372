"""Helpers shared by the RMS components."""

from typing import Generator, Optional
from datetime import datetime
from contextlib import contextmanager
from base64 import b64encode, b64decode
import binascii
import hashlib
import hmac
import logging
import re
import secrets

import pycountry
from email_validator import EmailNotValidError, validate_email
from pytz import UTC
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.session import Session

from .exceptions import InvalidArgument, StorageError, Unauthorized
from .models import Base

logger = logging.getLogger(__name__)

PASSWORD_MIN_LENGTH = 6
SALT_LENGTH = 16
HASH_ITERATIONS = 100_000

EMAIL_MAX_LENGTH = 254

_BASE36_DIGITS = '0123456789abcdefghijklmnopqrstuvwxyz'
_BASE36_PATTERN = re.compile(r'[0-9a-z]+')


def now() -> int:
    """Get the current epoch/unix time."""
    return epoch(datetime.now(tz=UTC))


def epoch(t: datetime) -> int:
    """Convert a :class:`.datetime` to UNIX time."""
    return int(t.timestamp())


def from_epoch(t: int) -> datetime:
    """Get a :class:`datetime` from an UNIX timestamp."""
    return datetime.fromtimestamp(t, tz=UTC)


@contextmanager
def transaction(session: Session) -> Generator[Session, None, None]:
    """
    Context manager for database transaction.

    Commits when the block exits cleanly. Driver errors are rolled back and
    re-raised as :class:`.StorageError`; anything else is rolled back and
    propagated unchanged.
    """
    try:
        yield session
        session.commit()
    except SQLAlchemyError as e:
        logger.error('Commit failed, rolling back: %s', str(e))
        session.rollback()
        raise StorageError(f'Database error: {e}') from e
    except Exception:
        session.rollback()
        raise


@contextmanager
def reading(session: Session) -> Generator[Session, None, None]:
    """
    Context manager for read-only queries.

    Driver errors are rolled back and re-raised as :class:`.StorageError`.
    """
    try:
        yield session
    except SQLAlchemyError as e:
        logger.error('Query failed, rolling back: %s', str(e))
        session.rollback()
        raise StorageError(f'Database error: {e}') from e


def create_all(engine: Engine) -> None:
    """Create all RMS tables."""
    Base.metadata.create_all(engine)


def drop_all(engine: Engine) -> None:
    """Drop all RMS tables."""
    Base.metadata.drop_all(engine)


def is_available(session: Session) -> bool:
    """Check our connection to the database."""
    try:
        session.execute(text('SELECT 1'))
    except Exception as e:
        logger.error('Encountered an error talking to database: %s', e)
        return False
    return True


def _hash_salt_and_password(salt: bytes, password: str) -> bytes:
    return hashlib.pbkdf2_hmac('sha256', password.encode('utf-8'), salt,
                               HASH_ITERATIONS)


def hash_password(password: str) -> str:
    """Generate a salted one-way hash of a password."""
    salt = secrets.token_bytes(SALT_LENGTH)
    hashed = _hash_salt_and_password(salt, password)
    return b64encode(salt + hashed).decode('ascii')


def check_password(password: str, encrypted: str) -> None:
    """
    Check a password against an encrypted hash.

    Raises
    ------
    :class:`.Unauthorized`
        The password does not match, or ``encrypted`` is not a hash we
        produced.

    """
    try:
        decoded = b64decode(encrypted.encode('ascii'), validate=True)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise Unauthorized('Malformed password hash') from e
    if len(decoded) <= SALT_LENGTH:
        raise Unauthorized('Malformed password hash')
    salt = decoded[:SALT_LENGTH]
    enc_hashed = decoded[SALT_LENGTH:]
    pass_hashed = _hash_salt_and_password(salt, password)
    if not hmac.compare_digest(pass_hashed, enc_hashed):
        raise Unauthorized('Incorrect password')


def is_valid_email(value: object) -> bool:
    """Syntactic check of an e-mail address; the domain is not resolved."""
    if not isinstance(value, str) or value != value.strip() \
            or len(value) > EMAIL_MAX_LENGTH:
        return False
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError as e:
        logger.debug('Not an e-mail address: %r: %s', value, e)
        return False
    return True


def normalize_lang(value: object) -> str:
    """
    Validate a ``ll_CC`` language code and return it normalized.

    ``en-us``, ``en_us`` and ``EN_US`` all become ``en_US``.
    """
    parts = re.split(r'[-_]', str(value))
    if len(parts) != 2:
        raise InvalidArgument(
            f'Language must be a code in format ll_CC, got {value!r}'
        )
    lang, region = parts[0].lower(), parts[1].upper()
    try:
        known = pycountry.languages.get(alpha_2=lang) is not None \
            and pycountry.countries.get(alpha_2=region) is not None
    except (KeyError, LookupError):
        known = False
    if not known:
        raise InvalidArgument(
            f'Language must be a code in format ll_CC, got {value!r}'
        )
    return f'{lang}_{region}'


def to_base36(number: int, width: int = 0) -> str:
    """Encode a non-negative integer in lowercase base 36, zero-padded."""
    if number < 0:
        raise InvalidArgument('Cannot encode a negative number')
    if number == 0:
        return '0'.rjust(width, '0')
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36_DIGITS[rem])
    return ''.join(reversed(digits)).rjust(width, '0')


def is_base36(value: object) -> bool:
    return isinstance(value, str) \
        and _BASE36_PATTERN.fullmatch(value) is not None


def from_base36(value: Optional[str]) -> int:
    """Decode a lowercase base-36 string; anything malformed decodes to 0."""
    if not is_base36(value):
        return 0
    return int(value, 36)
