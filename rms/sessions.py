"""
The current user of a request.

A :class:`SessionManager` ties a :class:`.User` to the visitor's session and
to two cookies:

* the logged-in hint, a plain ``1`` that page scripts may read to tell
  whether somebody is logged in. It is not trusted by the server.
* the auto-login token (see :mod:`.tokens`), http-only, secure-only and
  strictly same-site, which logs the visitor back in once the session is
  gone.
"""

from typing import Any, Iterable, List, MutableMapping, Optional, Union
import logging

from . import tokens, util
from .cookies import CookieJar
from .domain import Client, VerifiedIdentity, Visit
from .exceptions import Conflict, InvalidArgument, InvalidState, NotFound, \
    StorageError, Unauthorized
from .service import Registry
from .users import User, Who

logger = logging.getLogger(__name__)

SESSION_KEY = 'rms.user'
LOGGED_IN_COOKIE = 'rmsLoggedIn'
AUTOLOGIN_COOKIE = 'rmsAutologin'
VISIT_KEY = 'rms.visit'

_LOGIN_ERRORS = (NotFound, InvalidArgument, InvalidState, Unauthorized,
                 StorageError)


class SessionManager(object):
    """Login state of one visitor."""

    def __init__(self, registry: Registry, session: MutableMapping[str, Any],
                 cookies: CookieJar, client: Client,
                 session_key: str = SESSION_KEY,
                 logged_in_cookie: str = LOGGED_IN_COOKIE,
                 autologin_cookie: str = AUTOLOGIN_COOKIE,
                 autologin_lifetime: int = tokens.AUTOLOGIN_LIFETIME,
                 debugging: bool = False,
                 visit: Optional[Visit] = None) -> None:
        """
        Resolve the current user.

        The user ID stored in the session wins. Without one, a valid
        auto-login cookie is honoured, but only over a secure connection.
        Any failure leaves the visitor logged out.

        Parameters
        ----------
        registry : :class:`.Registry`
        session : dict-like
            Per-visitor storage that survives between requests.
        cookies : :class:`.CookieJar`
        client : :class:`.Client`
        session_key : str
            Key of the user ID in ``session``.
        logged_in_cookie : str
        autologin_cookie : str
        autologin_lifetime : int
            Seconds an auto-login token stays valid.
        debugging : bool
            Adds the ``debugger`` tag to public user data.
        visit : :class:`.Visit`
            Where the visitor entered the site. Stored with the accounts
            created during this request.

        """
        self.registry = registry
        self.session = session
        self.cookies = cookies
        self.client = client
        self.session_key = session_key
        self.logged_in_cookie = logged_in_cookie
        self.autologin_cookie = autologin_cookie
        self.autologin_lifetime = autologin_lifetime
        self.debugging = debugging
        self.visit = visit
        self.user = self._guest()

        try:
            user = self._resolve()
        except StorageError:
            logger.exception('Cannot read the session user; logged out')
            user = None
        except _LOGIN_ERRORS as e:
            logger.error('Failed to resolve the session user: %s', e)
            user = None
        if user is not None:
            self.user = user
            self.session[self.session_key] = user.id
        elif self.session_key in self.session:
            del self.session[self.session_key]
        self._update_hint()

    def _guest(self) -> User:
        return User(self.registry.session, clock=self.registry.clock)

    def _resolve(self) -> Optional[User]:
        user_id = self.session.get(self.session_key)
        if isinstance(user_id, int) and user_id:
            user = self.registry.find_user(user_id)
            if user is not None and user.can_login:
                return user
            logger.warning('Session refers to unusable user %s', user_id,
                           extra={'id': user_id})

        token = self.cookies.get(self.autologin_cookie)
        if not token:
            return None
        if not self.client.secure:
            logger.warning('Ignoring auto-login cookie sent over an insecure'
                           ' connection from %s', self.client.ip)
            return None
        user_id = self.parse_autologin_token(token)
        if not user_id:
            self.cookies.clear(self.autologin_cookie)
            return None
        user = self.registry.find_user(user_id)
        if user is None or not user.can_login:
            return None
        logger.info('User %s logged in with an auto-login token', user,
                    extra={'id': user.id, 'username': user.username})
        return user

    def _update_hint(self) -> None:
        if self.user.id:
            self.cookies.set(self.logged_in_cookie, '1')
        else:
            self.cookies.clear(self.logged_in_cookie)

    @property
    def is_logged_in(self) -> bool:
        return bool(self.user.id)

    def login_no_password(self, who: Union[Who, User]) -> bool:
        """
        Log in a user whose identity was established elsewhere.

        Returns
        -------
        bool
            False if the user does not exist or may not log in.

        """
        try:
            user = who if isinstance(who, User) \
                else self.registry.get_user(who)
            if user.removed or not user.can_login:
                raise Unauthorized(f'{user} is not allowed to log in')
            user.last_login = self.registry.clock()
            user.last_login_from = self.client.ip[:64]
            user.save()
        except _LOGIN_ERRORS as e:
            logger.warning('Login of %s failed: %s', who, e,
                           extra={'who': str(who)})
            return False

        self.user = user
        self.session[self.session_key] = user.id
        self._update_hint()
        logger.info('User %s logged in', user,
                    extra={'id': user.id, 'username': user.username})
        return True

    def login(self, username: str, password: str) -> bool:
        """Log in with a username and a password."""
        if not password or len(password) < util.PASSWORD_MIN_LENGTH:
            logger.warning('Login of %s rejected: password too short',
                           username, extra={'username': username})
            return False
        try:
            user = self.registry.find_user(username)
        except StorageError:
            logger.exception('Login of %s failed: cannot read the user',
                             username, extra={'username': username})
            return False
        if user is None:
            logger.warning('Login failed: unknown user %s', username,
                           extra={'username': username})
            return False
        if not user.validate_password(password):
            logger.warning('Invalid password for user %s', username,
                           extra={'id': user.id, 'username': username})
            return False
        return self.login_no_password(user)

    def login_with_identity(self, identity: VerifiedIdentity,
                            lang: Optional[str] = None) -> bool:
        """
        Log in with an identity verified by an external provider.

        An account is created for unknown e-mails; it has no password and
        gets the name and picture of the identity as meta data.
        """
        try:
            user = self.registry.find_user(identity.email)
        except StorageError:
            logger.exception('Login of %s failed: cannot read the user',
                             identity.email,
                             extra={'username': identity.email})
            return False
        if user is None:
            data = {'username': identity.email}
            if lang:
                try:
                    data['lang'] = util.normalize_lang(lang)
                except InvalidArgument:
                    logger.debug('Ignoring language %s', lang)
            try:
                user = self.registry.create_user(data, self.visit)
            except (InvalidArgument, Conflict, StorageError) as e:
                logger.error('Cannot create user %s: %s', identity.email, e,
                             extra={'username': identity.email})
                return False
            for key, value in (('givenName', identity.given_name),
                               ('familyName', identity.family_name),
                               ('picture', identity.picture)):
                if value:
                    user.meta[key] = value
        return self.login_no_password(user)

    def logout(self) -> None:
        """Forget the user, both in the session and in the cookies."""
        if self.user.id:
            logger.info('User %s logged out', self.user,
                        extra={'id': self.user.id})
        self.session.pop(self.session_key, None)
        self.cookies.clear(self.autologin_cookie)
        self.cookies.clear(self.logged_in_cookie)
        self.user = self._guest()

    def remember(self) -> bool:
        """
        Issue the auto-login cookie for the current user.

        Only over a secure connection and only with somebody logged in.
        """
        if not self.client.secure:
            logger.warning('Not issuing an auto-login cookie over an insecure'
                           ' connection')
            return False
        if not self.user.id:
            logger.warning('Not issuing an auto-login cookie: nobody is'
                           ' logged in')
            return False
        now = self.registry.clock()
        token = tokens.gen_autologin_token(self.user, self.client, now,
                                           self.autologin_lifetime)
        self.cookies.set(self.autologin_cookie, token,
                         expires=now + self.autologin_lifetime, secure=True,
                         httponly=True, samesite='Strict')
        return True

    def on_authorize(self, rights: Iterable[Any]) -> List[Any]:
        """Get those of ``rights`` the current user holds."""
        if not self.user.id:
            return []
        return self.user.filter_rights(list(rights))

    def gen_autologin_token(self) -> str:
        return tokens.gen_autologin_token(self.user, self.client,
                                          self.registry.clock(),
                                          self.autologin_lifetime)

    def parse_autologin_token(self, token: str) -> Optional[int]:
        """Get the user ID from a token issued to this client, or None."""
        return tokens.parse_autologin_token(token, self.client,
                                            self.registry.find_user,
                                            self.registry.clock(),
                                            self.autologin_lifetime)

    def change_settings(self, current_password: str,
                        username: Optional[str] = None,
                        password: Optional[str] = None,
                        confirm: Optional[str] = None) -> bool:
        """
        Change the username and/or the password of the current user.

        The current password is not checked for accounts without one, which
        are created by federated login.

        Returns
        -------
        bool
            False if the current password was rejected.

        Raises
        ------
        :class:`.InvalidState`
            Nobody is logged in.
        :class:`.InvalidArgument`
            The new password is too short, does not match ``confirm`` or the
            username is not an e-mail.
        :class:`.Conflict`
            Another user has the new username.

        """
        user = self.user
        if not user.id:
            raise InvalidState('Nobody is logged in.')
        if not current_password:
            raise InvalidArgument('Current password is required.')
        if user.password is not None \
                and not user.validate_password(current_password):
            logger.warning('Settings of %s: current password rejected', user,
                           extra={'id': user.id})
            return False

        if password:
            if password != confirm:
                raise InvalidArgument('New password and confirmation'
                                      ' password do not match.')
            if len(password) < util.PASSWORD_MIN_LENGTH:
                raise InvalidArgument(
                    f'Password must be at least'
                    f' {util.PASSWORD_MIN_LENGTH} characters long.'
                )
        rename = bool(username) and username != user.username
        if rename:
            if not util.is_valid_email(username):
                raise InvalidArgument('Username must be a valid e-mail.')
            if self.registry.find_user(username) is not None:
                raise Conflict(f'Username {username} is already taken.')

        if password:
            user.set_password(password)
        if rename:
            user.username = username
        user.save()

        if password and self.cookies.get(self.autologin_cookie):
            self.remember()
        return True

    def public_user_data(self) -> dict:
        return self.user.get_public_user_data(self.user, self.debugging)
