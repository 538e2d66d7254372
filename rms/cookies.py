"""Buffer cookie changes made while handling a request."""

from typing import Any, Dict, List, Mapping, Optional
import logging

logger = logging.getLogger(__name__)


class CookieJar(object):
    """
    Cookies received with a request, plus the changes to send back.

    Changes are queued by :meth:`set` and :meth:`clear` and written to a
    response by :meth:`apply`. Reading a cookie that was changed in this
    request returns the new value.
    """

    def __init__(self, incoming: Optional[Mapping[str, str]] = None,
                 path: str = '/') -> None:
        self._values: Dict[str, Optional[str]] = dict(incoming or {})
        self._pending: List[Dict[str, Any]] = []
        self.path = path

    def get(self, name: str) -> Optional[str]:
        return self._values.get(name)

    def set(self, name: str, value: str, expires: Optional[int] = None,
            secure: bool = False, httponly: bool = False,
            samesite: Optional[str] = None) -> None:
        """
        Queue a cookie.

        Parameters
        ----------
        name : str
        value : str
        expires : int
            UNIX time at which the cookie expires. Session cookie if None.
        secure : bool
            Send only over secure connections.
        httponly : bool
            Hide the cookie from page scripts.
        samesite : str
            ``'Strict'``, ``'Lax'`` or None.

        """
        self._values[name] = value
        self._pending = [c for c in self._pending if c['key'] != name]
        self._pending.append({'key': name, 'value': value,
                              'expires': expires, 'path': self.path,
                              'secure': secure, 'httponly': httponly,
                              'samesite': samesite})

    def clear(self, name: str) -> None:
        """Queue the removal of a cookie."""
        self._values[name] = None
        self._pending = [c for c in self._pending if c['key'] != name]
        self._pending.append({'key': name, 'value': '', 'expires': 0,
                              'path': self.path})

    @property
    def pending(self) -> List[Dict[str, Any]]:
        return list(self._pending)

    def apply(self, response: Any) -> Any:
        """Write the queued changes with ``response.set_cookie``."""
        for cookie in self._pending:
            logger.debug('Set cookie %s', cookie['key'])
            response.set_cookie(**cookie)
        self._pending = []
        return response
