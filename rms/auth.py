"""
Attach the current user to Flask requests.

.. code-block:: python

   from flask import Flask
   from rms.auth import Auth, scoped

   app = Flask('someapp')
   app.config.from_object('rms.config')
   Auth(app)

   @app.route('/reports')
   @scoped('read reports')
   def reports():
       return f'Hello {request.auth.user.username}'

"""

from typing import Any, Callable, Optional
from functools import wraps
import logging

from flask import Flask, Response, current_app, request
from flask import session as visitor_session
from werkzeug.exceptions import Forbidden, Unauthorized

from . import config
from .cookies import CookieJar
from .domain import Client, Visit
from .federated import GoogleVerifier
from .models import db
from .service import Registry
from .sessions import VISIT_KEY, SessionManager

logger = logging.getLogger(__name__)


class Auth(object):
    """
    Provides a :class:`.SessionManager` as ``request.auth``.

    The extension owns the process-wide :class:`.Registry`, so the same user
    is the same object in every request served by this process.
    """

    def __init__(self, app: Optional[Flask] = None,
                 verifier: Optional[GoogleVerifier] = None) -> None:
        """
        Parameters
        ----------
        app : :class:`Flask`
        verifier : :class:`.GoogleVerifier`
            Built from the app config when not given.

        """
        self._registry: Optional[Registry] = None
        self._verifier = verifier
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """Apply config defaults and hook the request cycle."""
        self.app = app
        for key in dir(config):
            if key.isupper():
                app.config.setdefault(key, getattr(config, key))
        if 'sqlalchemy' not in app.extensions:
            db.init_app(app)
        app.extensions['rms'] = self
        app.before_request(self.load_session)
        app.after_request(self.store_cookies)

    @property
    def registry(self) -> Registry:
        if self._registry is None:
            self._registry = Registry(
                db.session,
                recovery_lifetime=int(self.app.config['RMS_RECOVERY_LIFETIME'])
            )
        return self._registry

    @property
    def verifier(self) -> Optional[GoogleVerifier]:
        """Google ID token verifier; None while no client ID is set."""
        if self._verifier is None and self.app.config['RMS_GOOGLE_CLIENT_ID']:
            self._verifier = GoogleVerifier(
                self.app.config['RMS_GOOGLE_CLIENT_ID'],
                self.app.config['RMS_GOOGLE_CERTS_URL']
            )
        return self._verifier

    def load_session(self) -> None:
        """Resolve the visitor's user and attach it to the request."""
        conf = self.app.config
        client = Client(ip=request.remote_addr or '',
                        user_agent=request.user_agent.string or '',
                        secure=request.is_secure)
        cookies = CookieJar(request.cookies, path=conf['RMS_COOKIE_PATH'])
        request.auth = SessionManager(
            self.registry, visitor_session, cookies, client,
            session_key=conf['RMS_SESSION_KEY'],
            logged_in_cookie=conf['RMS_LOGGED_IN_COOKIE_NAME'],
            autologin_cookie=conf['RMS_AUTOLOGIN_COOKIE_NAME'],
            autologin_lifetime=int(conf['RMS_AUTOLOGIN_LIFETIME']),
            debugging=bool(conf['RMS_DEBUG']),
            visit=self._visit()
        )

    def _visit(self) -> Visit:
        """Where the visitor entered the site, kept from the first request."""
        seen = visitor_session.get(VISIT_KEY)
        if not isinstance(seen, dict):
            seen = {'landing_page': request.url,
                    'referrer_page': request.referrer}
            visitor_session[VISIT_KEY] = seen
        return Visit(landing_page=seen.get('landing_page'),
                     referrer_page=seen.get('referrer_page'))

    def store_cookies(self, response: Response) -> Response:
        """Send the cookie changes made while handling the request."""
        auth: Optional[SessionManager] = getattr(request, 'auth', None)
        if auth is not None:
            auth.cookies.apply(response)
        return response


def current_auth() -> Auth:
    """The :class:`.Auth` extension of the current app."""
    ext: Auth = current_app.extensions['rms']
    return ext


def scoped(*rights: str) -> Callable:
    """
    Generate a decorator that requires a logged-in user.

    Parameters
    ----------
    rights : str
        If given, the user must hold at least one of them.

    """
    def protector(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            """
            Raises
            ------
            :class:`Unauthorized`
                Nobody is logged in.
            :class:`Forbidden`
                The user holds none of the rights.

            """
            auth: SessionManager = request.auth
            if not auth.is_logged_in:
                logger.debug('Nobody is logged in; aborting')
                raise Unauthorized('Not logged in')
            if rights and not auth.on_authorize(rights):
                logger.debug('%s holds none of %s', auth.user, rights)
                raise Forbidden('Access denied')
            return func(*args, **kwargs)
        return wrapper
    return protector
