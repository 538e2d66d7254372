"""
Self-verifying user tokens.

Neither token is stored anywhere. Both have the form
``<id>-<expire>-<hash>``, every part in base 36, and the hash covers the
user's current password hash, so changing the password revokes every token
issued before.

Auto-login tokens are additionally bound to the client's IP address and
user agent and are kept in a cookie. Recovery hashes authorize one password
reset and are sent to the user by e-mail.
"""

from typing import Callable, Optional, Tuple, TYPE_CHECKING
import hashlib
import hmac
import logging

from . import util
from .domain import Client
from .exceptions import ExpiredToken, InvalidToken

if TYPE_CHECKING:
    from .users import User

logger = logging.getLogger(__name__)

AUTOLOGIN_LIFETIME = 30 * 24 * 3600
"""Maximum lifetime of an auto-login token, in seconds."""

RECOVERY_LIFETIME = 3600
"""Default lifetime of a recovery hash, in seconds."""

HASH_WIDTH = 10
"""Base-36 digits of a 48-bit hash; shorter hashes are zero-padded."""

FindUser = Callable[[int], Optional['User']]


def _autologin_digest(user_id: int, expire: int, client: Client,
                      password_hash: Optional[str]) -> str:
    message = f'{user_id}{expire}{client.ip}{client.user_agent}' \
              f'{password_hash or ""}'
    hex_digest = hashlib.sha1(message.encode('utf-8')).hexdigest()
    return util.to_base36(int(hex_digest[4:16], 16), HASH_WIDTH)


def _recovery_digest(user_id: int, expire: int,
                     password_hash: Optional[str]) -> str:
    message = f'{user_id}{expire}{password_hash or ""}'
    hex_digest = hashlib.sha256(message.encode('utf-8')).hexdigest()
    return util.to_base36(int(hex_digest[:12], 16), HASH_WIDTH)


def _split(token: str) -> Tuple[int, int, str]:
    """Decode ``id-expire-hash``; ID or expiry that decode to 0 are bad."""
    if not isinstance(token, str):
        raise InvalidToken('Token is not a string')
    parts = token.strip().split('-')
    if len(parts) != 3:
        raise InvalidToken('Token must have three parts')
    user_id = util.from_base36(parts[0])
    expire = util.from_base36(parts[1])
    if not user_id or not expire or not util.is_base36(parts[2]):
        raise InvalidToken('Token has an empty or malformed part')
    return user_id, expire, parts[2]


def gen_autologin_token(user: 'User', client: Client, now: int,
                        lifetime: int = AUTOLOGIN_LIFETIME) -> str:
    """
    Issue an auto-login token for ``user`` as seen from ``client``.

    Parameters
    ----------
    user : :class:`.User`
        Must have an ID.
    client : :class:`.Client`
    now : int
        Current UNIX time.
    lifetime : int
        Seconds until the token expires.

    Returns
    -------
    str

    """
    if not user.id:
        raise InvalidToken('Cannot issue a token for a user without ID')
    expire = now + lifetime
    digest = _autologin_digest(user.id, expire, client, user.password)
    return f'{util.to_base36(user.id)}-{util.to_base36(expire)}-{digest}'


def verify_autologin_token(token: str, client: Client, find_user: FindUser,
                           now: int, lifetime: int = AUTOLOGIN_LIFETIME) \
        -> 'User':
    """
    Resolve an auto-login token to its user.

    Raises
    ------
    :class:`.InvalidToken`
        The token is malformed, forged, issued to another client or for a
        password that has changed since, or the user no longer exists.
    :class:`.ExpiredToken`
        The token expired, or claims to live longer than ``lifetime``.

    """
    user_id, expire, digest = _split(token)
    if expire < now:
        raise ExpiredToken('Token expired')
    if expire > now + lifetime:
        raise ExpiredToken('Token lifetime exceeds the maximum')
    user = find_user(user_id)
    if user is None:
        raise InvalidToken(f'User {user_id} does not exist')
    expected = _autologin_digest(user_id, expire, client, user.password)
    if not hmac.compare_digest(expected, digest):
        raise InvalidToken('Token hash mismatch')
    return user


def parse_autologin_token(token: str, client: Client, find_user: FindUser,
                          now: int, lifetime: int = AUTOLOGIN_LIFETIME) \
        -> Optional[int]:
    """Get the user ID from an auto-login token, or None if it is invalid."""
    try:
        return verify_autologin_token(token, client, find_user, now,
                                      lifetime).id
    except InvalidToken as e:
        logger.warning('Rejected auto-login token: %s', e)
        return None


def gen_recovery_hash(user: 'User', now: int,
                      lifetime: Optional[int] = None) -> str:
    """Issue a password recovery hash for ``user``, valid for ``lifetime``."""
    if not user.id:
        raise InvalidToken('Cannot issue a hash for a user without ID')
    expire = now + (lifetime if lifetime is not None else RECOVERY_LIFETIME)
    digest = _recovery_digest(user.id, expire, user.password)
    return f'{util.to_base36(user.id)}-{util.to_base36(expire)}-{digest}'


def parse_recovery_hash(recovery_hash: str, find_user: FindUser,
                        now: int) -> Optional['User']:
    """Resolve a recovery hash to its user, or None if it is not valid."""
    try:
        user_id, expire, digest = _split(recovery_hash)
        if expire < now:
            raise ExpiredToken('Recovery hash expired')
        user = find_user(user_id)
        if user is None:
            raise InvalidToken(f'User {user_id} does not exist')
        expected = _recovery_digest(user_id, expire, user.password)
        if not hmac.compare_digest(expected, digest):
            raise InvalidToken('Recovery hash mismatch')
    except InvalidToken as e:
        logger.warning('Rejected recovery hash: %s', e)
        return None
    return user
