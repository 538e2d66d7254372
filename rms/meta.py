"""
Per-user key/value data.

Values are JSON documents stored one row per ``(userId, prop)``. They are
read from the database on first access and cached on the :class:`.Meta`
instance owned by the user, so ``user.meta['name']`` costs one query at
most::

    user.meta['givenName'] = 'John'
    user.meta['givenName']          # 'John'
    del user.meta['givenName']      # same as assigning None

"""

from typing import Any, Callable, Dict, List, Optional
import json
import logging

from sqlalchemy.orm.session import Session

from . import util
from .exceptions import InvalidState
from .models import DBMeta

logger = logging.getLogger(__name__)


def encode(value: Any) -> str:
    """Serialize a value the same way for storage and for search."""
    return json.dumps(value, ensure_ascii=False, sort_keys=True)


class Meta(object):
    """Lazy, read-through meta store bound to one user."""

    def __init__(self, session: Session,
                 get_user_id: Callable[[], Optional[int]]) -> None:
        """
        Parameters
        ----------
        session : :class:`Session`
        get_user_id : callable
            Returns the owner's current id, or None while it has none.

        """
        self._session = session
        self._get_user_id = get_user_id
        self._cache: Dict[str, Any] = {}

    @property
    def user_id(self) -> Optional[int]:
        return self._get_user_id()

    def _require_id(self, action: str) -> int:
        user_id = self.user_id
        if not user_id:
            raise InvalidState(f'Cannot {action} meta data: user ID not set')
        return user_id

    def get(self, key: str) -> Any:
        """Get a value, or None if it is not set or the user has no id."""
        user_id = self.user_id
        if not user_id:
            return None
        if key not in self._cache:
            with util.reading(self._session) as session:
                data = session.query(DBMeta.data) \
                    .filter(DBMeta.user_id == user_id) \
                    .filter(DBMeta.prop == key) \
                    .scalar()
            self._cache[key] = json.loads(data) if data is not None else None
        return self._cache[key]

    def set(self, key: str, value: Any) -> None:
        """Store a value. Storing None deletes the key."""
        user_id = self._require_id('set')
        if value is None:
            self.delete(key)
            return
        with util.transaction(self._session) as session:
            session.merge(DBMeta(user_id=user_id, prop=key,
                                 data=encode(value)))
        self._cache[key] = value

    def delete(self, key: str) -> None:
        """Remove a key. Removing a missing key is not an error."""
        user_id = self._require_id('delete')
        with util.transaction(self._session) as session:
            session.query(DBMeta) \
                .filter(DBMeta.user_id == user_id) \
                .filter(DBMeta.prop == key) \
                .delete()
        self._cache[key] = None

    def __getitem__(self, key: str) -> Any:
        return self.get(key)

    def __setitem__(self, key: str, value: Any) -> None:
        self.set(key, value)

    def __delitem__(self, key: str) -> None:
        self.delete(key)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None

    @staticmethod
    def search_by_value(session: Session, key: str, value: Any,
                        limit: Optional[int] = None) -> List[int]:
        """
        Find the ids of users whose ``key`` meta equals ``value``.

        Parameters
        ----------
        session : :class:`Session`
        key : str
        value : Any
            Compared in its serialized JSON form.
        limit : int
            Maximum number of ids to return; no limit by default.

        Returns
        -------
        list
            User ids, lowest first.

        """
        query = session.query(DBMeta.user_id) \
            .filter(DBMeta.prop == key) \
            .filter(DBMeta.data == encode(value)) \
            .order_by(DBMeta.user_id)
        if limit is not None:
            query = query.limit(limit)
        with util.reading(session):
            rows = query.all()
        return [user_id for user_id, in rows]
