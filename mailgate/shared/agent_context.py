"""
Agent context - which agent the current request is running for.

Backed by a ContextVar: every asyncio task runs in its own copy of the
context, so concurrent requests never see each other's identity, and the
binding survives any number of awaits inside the scope. asyncio.to_thread
copies the context too, so blocking IMAP calls see the same agent.
"""

import contextvars
from contextlib import contextmanager
from typing import Any, Awaitable, Callable, Iterator, Optional, TypeVar

T = TypeVar("T")

_current_agent: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "mailgate_agent_id", default=None
)


def current_agent_id() -> Optional[str]:
    """The agent bound to the running scope, or None outside any scope."""
    return _current_agent.get()


@contextmanager
def agent_scope(agent_id: str) -> Iterator[str]:
    """Bind `agent_id` for the body of the with-block; restore the previous value after."""
    token = _current_agent.set(agent_id)
    try:
        yield agent_id
    finally:
        _current_agent.reset(token)


def run_with_agent(agent_id: str, body: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Call a synchronous `body` with `agent_id` bound."""
    with agent_scope(agent_id):
        return body(*args, **kwargs)


async def arun_with_agent(
    agent_id: str, body: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any
) -> T:
    """Await a coroutine function with `agent_id` bound across all its suspensions."""
    with agent_scope(agent_id):
        return await body(*args, **kwargs)
