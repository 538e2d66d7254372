"""Testing helpers."""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.session import Session
from sqlalchemy.pool import StaticPool

from .. import util


@contextmanager
def temporary_db(database_url: str = 'sqlite://', create: bool = True,
                 drop: bool = True) -> Generator[Session, None, None]:
    """Provide an in-memory sqlite database for testing purposes."""
    engine = create_engine(database_url,
                           connect_args={'check_same_thread': False},
                           poolclass=StaticPool)
    if create:
        util.create_all(engine)
    session = sessionmaker(bind=engine)()
    try:
        yield session
    finally:
        session.close()
        if drop:
            util.drop_all(engine)
        engine.dispose()


class Clock(object):
    """A clock for tests; call it for the time, move it with ``advance``."""

    def __init__(self, start: int = 1_700_000_000) -> None:
        self.time = start

    def __call__(self) -> int:
        return self.time

    def advance(self, seconds: int) -> None:
        self.time += seconds
