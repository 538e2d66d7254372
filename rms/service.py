"""
The user registry.

:class:`Registry` is the only place users should come from. It keeps a weak
reference to every :class:`.User` it hands out so that, within this
process, the same ID or username always resolves to the same instance.
"""

from typing import Any, Callable, Dict, List, Mapping, Optional, Union
import logging
import threading
import warnings
import weakref

from sqlalchemy.orm.session import Session

from . import tokens, util
from .commands import as_command
from .domain import Visit
from .exceptions import InvalidArgument
from .meta import Meta
from .models import DBRight, DBUser
from .users import FIELDS, User, Who, to_record

logger = logging.getLogger(__name__)


class Registry(object):
    """
    Factory and identity cache of :class:`.User` objects.

    The cache may be shared by the threads of a web server; it is guarded by
    a lock. Usernames are matched regardless of case, like the default
    collation of MySQL does.
    """

    def __init__(self, session: Session,
                 clock: Callable[[], int] = util.now,
                 recovery_lifetime: int = tokens.RECOVERY_LIFETIME) -> None:
        """
        Parameters
        ----------
        session : :class:`Session`
        clock : callable
            Returns the current UNIX time.
        recovery_lifetime : int
            Seconds a recovery hash stays valid unless told otherwise.

        """
        self.session = session
        self.clock = clock
        self.recovery_lifetime = recovery_lifetime
        self._cache: List['weakref.ReferenceType[User]'] = []
        self._lock = threading.RLock()

    def _live(self) -> List[User]:
        """Prune dead or removed entries and return the live users."""
        users, refs = [], []
        with self._lock:
            for ref in self._cache:
                user = ref()
                if user is None or user.removed:
                    continue
                users.append(user)
                refs.append(ref)
            self._cache = refs
        return users

    def _cached(self, who: Union[int, str]) -> Optional[User]:
        if isinstance(who, str):
            who = who.casefold()
        for user in self._live():
            if isinstance(who, int) and user.id == who:
                return user
            if isinstance(who, str) and user.username \
                    and user.username.casefold() == who:
                return user
        return None

    def _register(self, user: User) -> User:
        """Track ``user``, unless another thread got there first."""
        with self._lock:
            if user.id:
                cached = self._cached(user.id)
                if cached is not None:
                    return cached
            user._registry = self
            self._cache.append(weakref.ref(user))
        return user

    def _new_user(self, who: Optional[Who] = None) -> User:
        return User(self.session, who, clock=self.clock)

    def is_tracked(self, user: User) -> bool:
        """Whether ``user`` is the instance this registry hands out."""
        return any(cached is user for cached in self._live())

    def get_user(self, who: Who) -> User:
        """
        Get a user by ID, username or record.

        Raises
        ------
        :class:`.NotFound`
            The user does not exist.
        :class:`.InvalidArgument`
            ``who`` is neither an ID, a valid e-mail nor a record.
        :class:`.StorageError`
            The user could not be read.

        """
        if isinstance(who, (int, str)) and not isinstance(who, bool):
            cached = self._cached(who)
            if cached is not None:
                return cached
        elif isinstance(who, Mapping) and who.get('id'):
            cached = self._cached(who['id'])
            if cached is not None:
                return cached
        return self._register(self._new_user(who))

    def find_user(self, who: Any) -> Optional[User]:
        """
        Find an active user by ID or username.

        Numeric strings are treated as IDs. Removed users are not found,
        neither by username nor by ID.

        Returns
        -------
        :class:`.User` or None

        """
        if isinstance(who, str) and who.strip().isdigit():
            who = int(who.strip())
        if not who or isinstance(who, bool):
            return None
        if isinstance(who, str):
            if not util.is_valid_email(who):
                return None
        elif not isinstance(who, int):
            return None

        cached = self._cached(who)
        if cached is not None:
            return cached

        query = self.session.query(DBUser).filter(DBUser.removed == 0)
        if isinstance(who, int):
            query = query.filter(DBUser.id == who)
        else:
            query = query.filter(DBUser.username == who)
        with util.reading(self.session):
            db_user = query.first()
        if db_user is None:
            return None
        return self._register(self._new_user(to_record(db_user)))

    def find_user_ids_by_right(self, *commands: Any) -> List[int]:
        """IDs of users holding any of ``commands``, lowest first."""
        if not commands:
            return []
        hashes = list({as_command(command).hash for command in commands})
        with util.reading(self.session) as session:
            rows = session.query(DBRight.user_id) \
                .filter(DBRight.command_hash.in_(hashes)) \
                .distinct() \
                .order_by(DBRight.user_id) \
                .all()
        return [user_id for user_id, in rows]

    def create_user(self, data: Dict[str, Any],
                    visit: Optional[Visit] = None) -> User:
        """
        Create and store a new user.

        Parameters
        ----------
        data : dict
            Field values; must contain ``username``. A plain-text
            ``password`` is hashed before it is stored.
        visit : :class:`.Visit`
            Seeds the analytics meta of the new user.

        """
        data = dict(data)
        password = data.pop('password', None)
        unknown = set(data) - set(FIELDS)
        if unknown:
            raise InvalidArgument(f'Unknown user fields: {sorted(unknown)}')
        user = self._new_user()
        for name, value in data.items():
            if value is not None:
                setattr(user, name, value)
        if password is not None:
            user.set_password(password)
        user.create(visit)
        return self._register(user)

    def remove_user(self, who: Union[Who, User]) -> None:
        """Delete a user for good, along with its rights and meta."""
        user = who if isinstance(who, User) else self.get_user(who)
        if not self.is_tracked(user):
            message = f'Removing orphan {user}; it was not obtained from' \
                ' this registry.'
            logger.warning(message)
            warnings.warn(message, RuntimeWarning)
        user_id = user.id
        user.wipe()
        self._live()
        logger.info('Removed user %s', user_id, extra={'id': user_id})

    def search_meta(self, key: str, value: Any, first: bool = False) \
            -> Union[List[User], Optional[User]]:
        """
        Find users by the value of one of their meta keys.

        Returns
        -------
        list or :class:`.User`
            All matching users, or the first of them (None if there is none)
            when ``first`` is set.

        """
        ids = Meta.search_by_value(self.session, key, value,
                                   limit=1 if first else None)
        users = [self.get_user(user_id) for user_id in ids]
        if first:
            return users[0] if users else None
        return users

    def gen_recovery_hash(self, user: User,
                          lifetime: Optional[int] = None) -> str:
        """Issue a password recovery hash for ``user``."""
        if lifetime is None:
            lifetime = self.recovery_lifetime
        return tokens.gen_recovery_hash(user, self.clock(), lifetime)

    def find_user_by_recovery_hash(self, recovery_hash: str) -> Optional[User]:
        """Resolve a recovery hash to its user, or None if it is not valid."""
        return tokens.parse_recovery_hash(recovery_hash, self.find_user,
                                          self.clock())
