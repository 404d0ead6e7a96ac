import asyncio
import inspect
from typing import Any, Awaitable, Callable, Sequence

from fastapi import HTTPException, status

from procsync.core.schemas import CallableRequest


# -----------------------------------------------------------------------------
# PIPELINE MODULE - request guards
# Purpose: run guard checks one after another before a handler.
# Each guard gets (request, call_next) and either continues or raises.
# -----------------------------------------------------------------------------

Guard = Callable[[Any, Callable[[], Awaitable[Any]]], Any]
Handler = Callable[[Any], Any]


class GuardRejection(HTTPException):
    """A guard refused the caller; carries a callable-style error code."""

    def __init__(
        self,
        detail: str,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        code: str = "failed-precondition",
    ):
        super().__init__(status_code=status_code, detail=detail)
        self.code = code


def _settle(task: asyncio.Future, done: asyncio.Future) -> None:
    if done.done():
        return
    if task.cancelled():
        done.cancel()
    elif task.exception() is not None:
        done.set_exception(task.exception())
    else:
        done.set_result(task.result())


async def chain_guards(guards: Sequence[Guard], request: Any, handler: Handler) -> Any:
    """
    Run ``guards`` in order, then ``handler(request)``.

    Guards may be plain or async functions. Guard ``i + 1`` only starts once
    guard ``i`` calls its continuation, and the first raised error propagates
    as is, so later guards and the handler never run. A guard that neither
    continues nor raises leaves the chain waiting; there is no timeout.

    Returns:
        Whatever the handler returns.
    """
    loop = asyncio.get_running_loop()

    async def execute(index: int) -> Any:
        if index == len(guards):
            outcome = handler(request)
            if inspect.isawaitable(outcome):
                outcome = await outcome
            return outcome

        done = loop.create_future()
        started = []

        def call_next() -> asyncio.Future:
            if started:
                raise RuntimeError("call_next() called more than once")
            task = asyncio.ensure_future(execute(index + 1))
            task.add_done_callback(lambda finished: _settle(finished, done))
            started.append(task)
            return task

        try:
            outcome = guards[index](request, call_next)
            if inspect.isawaitable(outcome):
                await outcome
        except BaseException:
            # Drop the downstream result so it is not reported as unretrieved
            done.add_done_callback(
                lambda future: future.cancelled() or future.exception()
            )
            raise

        return await done

    return await execute(0)


# =========================
# Built-in guards
# =========================
def is_confirmed_app(request: CallableRequest, call_next: Callable) -> Any:
    """Continue only for calls that carry verified App Check data."""
    if request.app is None:
        raise GuardRejection(
            "The function must be called from an App Check verified app.",
            status_code=status.HTTP_403_FORBIDDEN,
        )
    return call_next()


def is_authorized_user(request: CallableRequest, call_next: Callable) -> Any:
    """Continue only for calls made by an authenticated user."""
    if request.auth is None:
        raise GuardRejection(
            "The function must be called by an authorized user",
            status_code=status.HTTP_401_UNAUTHORIZED,
        )
    return call_next()


GUARDS = {
    "app": is_confirmed_app,
    "auth": is_authorized_user,
}


def resolve_guards(names: Sequence[str]) -> list:
    """Map guard names from configuration onto guard functions."""
    try:
        return [GUARDS[name] for name in names]
    except KeyError as missing:
        raise ValueError(f"Unknown guard {missing}") from None
