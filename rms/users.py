"""
Provide the RMS user entity.

A user is identified by its numeric ID or by its username, which is an
e-mail address. Users are obtained from a :class:`.service.Registry`, which
guarantees one live instance per user in this process:

.. code-block:: python

   existing = registry.get_user(123)
   other = registry.get_user('user@example.com')
   new = registry.create_user({'username': 'user@example.com',
                               'password': 'secret1'})

Granting, revoking and checking rights:

.. code-block:: python

   user.grant('create user', 'remove user')
   user.revoke('remove user')
   user.has_right('create user')
   user.has_right('create user', 'manage users')        # any of them
   user.has_rights_all('read reports', 'member of the board')
   allowed = user.filter_rights(['create user', 'remove user'])

Field changes are tracked and only flushed by :meth:`User.save`.
"""

from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, \
    Union, TYPE_CHECKING
import logging
import warnings
import weakref

from sqlalchemy.orm.session import Session

from . import util
from .commands import ADMINISTRATORS, GUESTS, USERS, Command, as_command
from .domain import Visit
from .exceptions import AlreadyDirty, Conflict, InvalidArgument, \
    InvalidState, NotFound, StorageError, Unauthorized
from .meta import Meta
from .models import DBMeta, DBRight, DBUser, DBCommand

if TYPE_CHECKING:
    from .service import Registry

logger = logging.getLogger(__name__)

FIELDS = ('id', 'username', 'password', 'lang', 'removed', 'can_login',
          'created', 'modified', 'last_login', 'last_login_from')

Who = Union[int, str, Mapping[str, Any]]


def _username(value: Any) -> str:
    if not util.is_valid_email(value):
        raise InvalidArgument('Username must be a valid e-mail.')
    return str(value)


def _can_login(value: Any) -> int:
    if not isinstance(value, (bool, int)):
        raise InvalidArgument('Property can_login must be a boolean.')
    return int(bool(value))


def _timestamp(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) \
            or not 0 <= value < 2 ** 32:
        raise InvalidArgument('Timestamps must be integer UNIX times.')
    return value


def _address(value: Any) -> str:
    if not isinstance(value, str) or len(value) > 64:
        raise InvalidArgument('Property last_login_from must be a string.')
    return value


_VALIDATORS: Dict[str, Callable[[Any], Any]] = {
    'username': _username,
    'lang': util.normalize_lang,
    'can_login': _can_login,
    'created': _timestamp,
    'modified': _timestamp,
    'last_login': _timestamp,
    'last_login_from': _address,
}


class _Field(object):
    """A user attribute backed by the row data, set through validation."""

    def __init__(self, doc: str) -> None:
        self.__doc__ = doc

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, user: Optional['User'], owner: type) -> Any:
        if user is None:
            return self
        return user._data[self.name]

    def __set__(self, user: 'User', value: Any) -> None:
        user._set_field(self.name, value)


class User(object):
    """An RMS user account."""

    id = _Field('Unique ID of the user, assigned by the database.')
    username = _Field('E-mail address of the user.')
    password = _Field('Password hash. Assigning a plain-text password '
                      'stores its hash.')
    lang = _Field('Preferred language, ``ll_CC``.')
    removed = _Field('Time of removal; 0 or None while the user is active.')
    created = _Field('Time of creation.')
    modified = _Field('Time of the last saved change.')
    last_login = _Field('Time of the last login.')
    last_login_from = _Field('IP address of the last login.')

    def __init__(self, session: Session, who: Optional[Who] = None,
                 clock: Callable[[], int] = util.now) -> None:
        """
        Create a user and optionally load it.

        Parameters
        ----------
        session : :class:`Session`
        who : int, str or dict
            User ID, username or a record of field values.
        clock : callable
            Returns the current UNIX time.

        """
        self._modified: Dict[str, None] = {}
        self._data: Dict[str, Any] = dict.fromkeys(FIELDS)
        self._session = session
        self._clock = clock
        self._registry: Optional['Registry'] = None
        self.meta = self._new_meta()
        if who is not None:
            self.load(who)

    def _new_meta(self) -> Meta:
        ref = weakref.ref(self)

        def get_user_id() -> Optional[int]:
            user = ref()
            return user.id if user is not None else None
        return Meta(self._session, get_user_id)

    @property
    def can_login(self) -> bool:
        """Whether the user may log in. New users may."""
        value = self._data['can_login']
        return True if value is None else bool(value)

    @can_login.setter
    def can_login(self, value: Any) -> None:
        self._set_field('can_login', value)

    @property
    def is_modified(self) -> bool:
        """True while there are changes that :meth:`save` has not stored."""
        return bool(self._modified)

    def _set_field(self, name: str, value: Any) -> None:
        if name == 'id':
            raise InvalidArgument('Property id is read-only and is generated'
                                  ' by database.')
        if name == 'removed':
            raise InvalidArgument('Property removed is read-only. Use'
                                  ' User.mark_as_removed() instead.')
        if name == 'password':
            self.set_password(value)
            return
        value = _VALIDATORS[name](value)
        if self._data[name] == value:
            return
        self._data[name] = value
        self._modified[name] = None

    def load(self, who: Who) -> 'User':
        """
        Load the user by ID, by username, or from a record.

        Lookup by username ignores users marked as removed; lookup by ID
        does not, so removed users stay addressable.

        Raises
        ------
        :class:`.AlreadyDirty`
            There are unsaved changes.
        :class:`.Conflict`
            Loading by username into an instance that already has an ID.
        :class:`.NotFound`
            No such user.
        :class:`.InvalidArgument`
            ``who`` is not an ID, a valid e-mail or a record.

        """
        if self._modified:
            raise AlreadyDirty(f'{self} has unsaved changes:'
                               f' {", ".join(self._modified)}')
        if isinstance(who, Mapping):
            return self._load_from_record(who)
        if isinstance(who, bool):
            raise InvalidArgument(f'Cannot load a user by {who!r}')
        if isinstance(who, int):
            return self._load_by_id(who)
        if isinstance(who, str):
            if self.id:
                raise Conflict(f'{self} is already loaded; refusing to'
                               f' load {who} into it.')
            return self._load_by_username(who)
        raise InvalidArgument(f'Cannot load a user by {who!r}')

    def _load_by_id(self, user_id: int) -> 'User':
        with util.reading(self._session) as session:
            db_user = session.query(DBUser) \
                .filter(DBUser.id == user_id) \
                .first()
        if db_user is None:
            raise NotFound(f'User with ID {user_id} does not exist.')
        return self._replace(to_record(db_user))

    def _load_by_username(self, username: str) -> 'User':
        if not util.is_valid_email(username):
            raise InvalidArgument('Username must be a valid e-mail.')
        with util.reading(self._session) as session:
            db_user = session.query(DBUser) \
                .filter(DBUser.username == username) \
                .filter(DBUser.removed == 0) \
                .first()
        if db_user is None:
            raise NotFound(f'User with username {username} does not exist.')
        return self._replace(to_record(db_user))

    def _load_from_record(self, record: Mapping[str, Any]) -> 'User':
        data = dict.fromkeys(FIELDS)
        data.update({k: v for k, v in record.items() if k in data})
        return self._replace(data)

    def _replace(self, data: Dict[str, Any]) -> 'User':
        self._data = data
        self._modified = {}
        self.meta = self._new_meta()
        return self

    def _reset(self) -> None:
        self._replace(dict.fromkeys(FIELDS))

    def _loaded_check(self, message: str) -> None:
        if not self.id:
            raise InvalidState(f'{message} This user does not exist yet'
                               f' ({self}). Load the user or create a new'
                               ' one first.')

    def set_password(self, plain: str) -> str:
        """
        Set the password of the user.

        Returns
        -------
        str
            The new password hash.

        Raises
        ------
        :class:`.InvalidArgument`
            The password is shorter than the minimum length.

        """
        if not isinstance(plain, str) or len(plain) < util.PASSWORD_MIN_LENGTH:
            raise InvalidArgument(f'Password must be at least'
                                  f' {util.PASSWORD_MIN_LENGTH} characters'
                                  ' long.')
        self._data['password'] = util.hash_password(plain)
        self._modified['password'] = None
        return self._data['password']

    def validate_password(self, plain: str) -> bool:
        """Check a plain-text password. Never raises."""
        if not self.can_login or not plain or not self.password:
            return False
        if len(plain) < util.PASSWORD_MIN_LENGTH:
            return False
        try:
            util.check_password(plain, self.password)
        except Unauthorized:
            return False
        return True

    def save(self) -> 'User':
        """Store the changed fields."""
        self._loaded_check('Cannot save the user.')
        if not self._modified:
            return self
        self._data['modified'] = self._clock()
        self._modified['modified'] = None
        values = {name: self._data[name] for name in self._modified}
        with util.transaction(self._session) as session:
            session.query(DBUser) \
                .filter(DBUser.id == self.id) \
                .update(values)
        self._modified = {}
        return self

    def create(self, visit: Optional[Visit] = None) -> 'User':
        """
        Insert this user as a new account and reload it.

        Use :meth:`.Registry.create_user` rather than calling this directly.

        Parameters
        ----------
        visit : :class:`.Visit`
            Where the user came from. Stored as ``landingPage`` and
            ``referrerPage`` meta. Leave it out for accounts created from a
            terminal.

        Raises
        ------
        :class:`.InvalidArgument`
            The username is missing or not an e-mail.
        :class:`.Conflict`
            An active user with this username exists.
        :class:`.StorageError`
            The insert did not produce an ID.

        """
        if not self.username:
            raise InvalidArgument('Cannot create the user. You have to'
                                  ' specify at least the username.')
        _username(self.username)
        if self.id:
            raise InvalidState(f'{self} already exists.')

        timestamp = self._clock()
        for name in ('created', 'modified'):
            if self._data[name] is None:
                self._data[name] = timestamp
        values = {name: value for name, value in self._data.items()
                  if value is not None and name != 'id'}

        with util.transaction(self._session) as session:
            taken = session.query(DBUser.id) \
                .filter(DBUser.username == self.username) \
                .filter(DBUser.removed == 0) \
                .first()
            if taken is not None:
                raise Conflict(f'User {self.username} already exists.')
            db_user = DBUser(**values)
            session.add(db_user)
            session.flush()
            user_id = db_user.id
        if not user_id:
            raise StorageError('Failed to create the user.')

        self._modified = {}
        self._load_by_id(user_id)
        logger.info('Created user %s', self,
                    extra={'id': self.id, 'username': self.username})

        if visit is not None:
            self.meta['landingPage'] = visit.landing_page
            self.meta['referrerPage'] = visit.referrer_page
        return self

    def remove(self) -> None:
        """Remove the user from the database through its registry."""
        if self._registry is None:
            raise InvalidState(f'{self} is not managed by a registry.')
        self._registry.remove_user(self)

    def wipe(self) -> 'User':
        """
        Delete the user row and reset this instance.

        Use :meth:`.Registry.remove_user` rather than calling this directly.
        """
        self._loaded_check('Cannot remove the user.')
        user_id = self.id
        with util.transaction(self._session) as session:
            session.query(DBRight).filter(DBRight.user_id == user_id).delete()
            session.query(DBMeta).filter(DBMeta.user_id == user_id).delete()
            session.query(DBUser).filter(DBUser.id == user_id).delete()
        self._reset()
        self._data['removed'] = self._clock()
        logger.info('Wiped user %s', user_id, extra={'id': user_id})
        return self

    def mark_as_removed(self) -> 'User':
        """
        Mark the user as removed without deleting the row.

        Such a user cannot log in and is not found by username. The change
        is saved immediately.
        """
        self._loaded_check('Cannot mark the user as removed.')
        self.can_login = False
        self._data['removed'] = self._clock()
        self._modified['removed'] = None
        return self.save()

    def list_permissions(self) -> List[Command]:
        """Get all commands the user holds."""
        self._loaded_check('Cannot list permissions.')
        with util.reading(self._session) as session:
            rows = session.query(DBCommand.command) \
                .join(DBRight, DBRight.command_hash == DBCommand.hash) \
                .filter(DBRight.user_id == self.id) \
                .order_by(DBCommand.command) \
                .all()
        return [Command(text) for text, in rows]

    def grant(self, *commands: Any) -> None:
        """Grant rights. Granting a right the user holds is a no-op."""
        self._loaded_check('Cannot grant rights.')
        for command in map(as_command, commands):
            command.ensure_persisted(self._session)
            with util.transaction(self._session) as session:
                session.merge(DBRight(user_id=self.id,
                                      command_hash=command.hash))

    def revoke(self, *commands: Any) -> None:
        """Revoke rights. Revoking a right the user lacks is a no-op."""
        self._loaded_check('Cannot revoke rights.')
        for command in map(as_command, commands):
            with util.transaction(self._session) as session:
                session.query(DBRight) \
                    .filter(DBRight.user_id == self.id) \
                    .filter(DBRight.command_hash == command.hash) \
                    .delete()

    def filter_rights(self,
                      commands: Union[Iterable[Any], Mapping[Any, Any]]) \
            -> Union[List[Any], Dict[Any, Any]]:
        """
        Return only those commands the user holds.

        Order is preserved, and so are keys when ``commands`` is a mapping.
        ``"member of users"`` is held by every user with an ID and
        ``"member of guests"`` by every user without one; neither is looked
        up in the database.
        """
        if isinstance(commands, Mapping):
            items = list(commands.items())
        else:
            items = list(enumerate(commands))
        objects = {key: as_command(value) for key, value in items}

        found = set()
        if self.id and objects:
            hashes = list({command.hash for command in objects.values()})
            with util.reading(self._session) as session:
                rows = session.query(DBRight.command_hash) \
                    .filter(DBRight.user_id == self.id) \
                    .filter(DBRight.command_hash.in_(hashes)) \
                    .all()
            found = {command_hash for command_hash, in rows}

        def held(command: Command) -> bool:
            return command.hash in found \
                or (command.text == USERS and bool(self.id)) \
                or (command.text == GUESTS and not self.id)

        kept = [(key, value) for key, value in items if held(objects[key])]
        if isinstance(commands, Mapping):
            return dict(kept)
        return [value for _, value in kept]

    def has_right(self, *commands: Any) -> bool:
        """Does the user hold at least one of ``commands``?"""
        return len(self.filter_rights(list(commands))) > 0

    def has_rights_all(self, *commands: Any) -> bool:
        """Does the user hold all of ``commands``?"""
        return len(self.filter_rights(list(commands))) == len(commands)

    def is_administrator(self) -> bool:
        return self.has_right(ADMINISTRATORS)

    def is_guest(self) -> bool:
        return self.has_right(GUESTS)

    def grant_administrator(self) -> None:
        self.grant(ADMINISTRATORS)

    def revoke_administrator(self) -> None:
        self.revoke(ADMINISTRATORS)

    def get_public_user_data(self, current: Optional['User'] = None,
                             debugging: bool = False) -> Dict[str, Any]:
        """
        Get the data that is safe to share with the front-end.

        Parameters
        ----------
        current : :class:`User`
            The user acting in this request; tags describe that user.
            Defaults to this user.
        debugging : bool
            Whether the process runs in debugging mode.

        """
        acting = current if current is not None else self
        tags = []
        if acting.is_administrator():
            tags.append('administrator')
        if debugging:
            tags.append('debugger')
        return {'username': self.username, 'id': self.id, 'tags': tags}

    def __str__(self) -> str:
        if self.id:
            ident = str(self.id)
        else:
            ident = 'unsaved' if self._modified else 'not-loaded'
        flags = [ident, self.username or 'anonymous']
        if self._data['removed']:
            flags.append('removed')
        return f'User[{", ".join(flags)}]'

    def __repr__(self) -> str:
        return str(self)

    def __del__(self) -> None:
        modified = getattr(self, '_modified', None)
        if modified:
            warnings.warn(f'User object properties of {self} have been'
                          f' modified but not saved: {", ".join(modified)}',
                          RuntimeWarning)


def to_record(db_user: DBUser) -> Dict[str, Any]:
    return {name: getattr(db_user, name) for name in FIELDS}
