import uuid
from datetime import datetime, timezone


def utcnow() -> datetime:
    """ Naive UTC timestamp, the form stored in every DateTime column """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())
