"""RMS database models."""

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import Column, ForeignKey, Index, Integer, LargeBinary, \
    SmallInteger, String, Text, text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class DBUser(Base):  # type: ignore
    """
    User accounts.

    +---------------+------------------+------+-----+---------+----------------+
    | Field         | Type             | Null | Key | Default | Extra          |
    +---------------+------------------+------+-----+---------+----------------+
    | id            | int(10) unsigned | NO   | PRI | NULL    | auto_increment |
    | username      | varchar(255)     | NO   | MUL | NULL    |                |
    | password      | varchar(255)     | YES  |     | NULL    |                |
    | lang          | varchar(5)       | YES  |     | NULL    |                |
    | removed       | int(10) unsigned | NO   | MUL | 0       |                |
    | canLogin      | tinyint(1)       | NO   |     | 1       |                |
    | created       | int(10) unsigned | NO   |     | 0       |                |
    | modified      | int(10) unsigned | NO   |     | 0       |                |
    | lastLogin     | int(10) unsigned | YES  |     | NULL    |                |
    | lastLoginFrom | varchar(64)      | YES  |     | NULL    |                |
    +---------------+------------------+------+-----+---------+----------------+

    ``username`` is unique among rows with ``removed = 0`` only; that is
    enforced by the application, since removed rows keep their username.
    """

    __tablename__ = 'rmsUsers'
    __table_args__ = (Index('ix_rmsUsers_username_removed',
                            'username', 'removed'),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(255), nullable=False)
    password = Column(String(255), nullable=True)
    lang = Column(String(5), nullable=True)
    removed = Column(Integer, nullable=False, index=True,
                     server_default=text("'0'"))
    can_login = Column('canLogin', SmallInteger, nullable=False,
                       server_default=text("'1'"))
    created = Column(Integer, nullable=False, server_default=text("'0'"))
    modified = Column(Integer, nullable=False, server_default=text("'0'"))
    last_login = Column('lastLogin', Integer, nullable=True)
    last_login_from = Column('lastLoginFrom', String(64), nullable=True)


class DBMeta(Base):  # type: ignore
    """
    Per-user key/value store. ``data`` holds a JSON document.

    +--------+------------------+------+-----+---------+
    | Field  | Type             | Null | Key | Default |
    +--------+------------------+------+-----+---------+
    | userId | int(10) unsigned | NO   | PRI | NULL    |
    | prop   | varchar(64)      | NO   | PRI | NULL    |
    | data   | text             | NO   |     | NULL    |
    +--------+------------------+------+-----+---------+
    """

    __tablename__ = 'rmsMeta'

    user_id = Column('userId', ForeignKey('rmsUsers.id', ondelete='CASCADE'),
                     primary_key=True, autoincrement=False)
    prop = Column(String(64), primary_key=True)
    data = Column(Text, nullable=False)


class DBCommand(Base):  # type: ignore
    """
    Dictionary of known commands, keyed by the SHA-1 digest of the text.

    +---------+--------------+------+-----+---------+
    | Field   | Type         | Null | Key | Default |
    +---------+--------------+------+-----+---------+
    | hash    | binary(20)   | NO   | PRI | NULL    |
    | command | varchar(255) | NO   |     | NULL    |
    +---------+--------------+------+-----+---------+
    """

    __tablename__ = 'rmsCommands'

    hash = Column(LargeBinary(20), primary_key=True)
    command = Column(String(255), nullable=False)


class DBRight(Base):  # type: ignore
    """
    Rights granted to users. A row means the user holds the command.

    +-------------+------------------+------+-----+---------+
    | Field       | Type             | Null | Key | Default |
    +-------------+------------------+------+-----+---------+
    | userId      | int(10) unsigned | NO   | PRI | NULL    |
    | commandHash | binary(20)       | NO   | PRI | NULL    |
    +-------------+------------------+------+-----+---------+
    """

    __tablename__ = 'rmsRights'

    user_id = Column('userId', ForeignKey('rmsUsers.id', ondelete='CASCADE'),
                     primary_key=True, autoincrement=False)
    command_hash = Column('commandHash',
                          ForeignKey('rmsCommands.hash', ondelete='CASCADE'),
                          primary_key=True, index=True)


db: SQLAlchemy = SQLAlchemy(metadata=Base.metadata)
