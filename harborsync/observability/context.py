"""Session id context for tracing one backup run through the logs.

While a run is in flight its session id is kept in a ContextVar. Tasks and
``asyncio.to_thread`` workers copy the context when they are created, so
log lines from the engine thread carry the same id as the loop side.

Usage:
    from harborsync.observability.context import session_scope

    with session_scope(checkpoint.session_id):
        result = await asyncio.to_thread(engine.run, ...)
"""

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

_session_id: ContextVar[Optional[str]] = ContextVar("harborsync_session_id", default=None)


def current_session_id() -> Optional[str]:
    return _session_id.get()


@contextmanager
def session_scope(session_id: str) -> Iterator[str]:
    """Tag everything logged inside the block with ``session_id``.

    Scopes nest: leaving the block restores whatever id was active
    before it.
    """
    token = _session_id.set(session_id)
    try:
        yield session_id
    finally:
        _session_id.reset(token)
