from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """
    Unit of work over an existing session.

    Commits when the block exits normally and rolls back on any exception, which is
    then re-raised. Blocks are not nestable: an inner block commits the outer work.

    Usage:
        with transaction(db):
            db.add(a)
            db.add(b)
    """
    try:
        yield db
        db.commit()
    except BaseException:
        db.rollback()
        raise
