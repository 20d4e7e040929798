"""Subscribe, trigger, await push, unsubscribe as one operation.

The server publishes the result of a triggered computation only to
subscriptions that already exist, so the trigger is issued strictly after
the server acknowledged the subscription.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, TypeVar

from .config import TimeoutSettings
from .endpoint import resolve_dial_params
from .errors import (
    Cancelled,
    DeadlineExceeded,
    TeamClientError,
    TriggerFailed,
)
from .protocol import GqlRequest, Payload
from .subscriber import DataHandler, GqlSubscriber
from .ws_client import DEFAULT_READ_TIMEOUT, DEFAULT_WRITE_TIMEOUT, GqlWsClient

_LOGGER = logging.getLogger(__name__)

DEFAULT_RENDEZVOUS_DEADLINE = 180.0

TriggerAction = Callable[[], Awaitable[Any]]

_T = TypeVar("_T")


class RendezvousCoordinator:
    """Runs trigger-and-wait operations against one GraphQL endpoint family.

    Never retries: a failed attempt is surfaced whole and the caller decides
    whether to run the entire rendezvous again.
    """

    def __init__(
        self,
        *,
        deadline: float = DEFAULT_RENDEZVOUS_DEADLINE,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        write_timeout: float = DEFAULT_WRITE_TIMEOUT,
        connect_timeout: float = 15.0,
        ws_client_factory: Callable[[], GqlWsClient] = GqlWsClient,
    ) -> None:
        self._deadline = deadline
        self._read_timeout = read_timeout
        self._write_timeout = write_timeout
        self._connect_timeout = connect_timeout
        self._ws_client_factory = ws_client_factory

    async def run(
        self,
        endpoint: str,
        credential: str,
        request: GqlRequest,
        trigger: TriggerAction,
        handler: DataHandler,
        *,
        deadline: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> Payload:
        """Run one rendezvous.

        Args:
            endpoint: HTTP GraphQL endpoint.
            credential: Access token snapshot used for this attempt only.
            request: Subscription document.
            trigger: Side-channel call, awaited once after start_ack.
            handler: Receives each matching payload; returns False to stop.
            deadline: Overall budget in seconds, defaults to the coordinator's.
            cancel_event: Setting it aborts the operation with Cancelled.

        Returns:
            The payload on which the handler stopped.

        Raises:
            TriggerFailed: The trigger raised.
            DeadlineExceeded: The overall deadline elapsed.
            Cancelled: ``cancel_event`` was set.
            TeamClientError: Any fatal connection or protocol error.
        """
        dial = resolve_dial_params(endpoint, credential)
        subscriber = GqlSubscriber(
            dial,
            request,
            read_timeout=self._read_timeout,
            write_timeout=self._write_timeout,
            connect_timeout=self._connect_timeout,
            ws_client=self._ws_client_factory(),
        )
        budget = self._deadline if deadline is None else deadline
        sub_id = subscriber.subscription_id

        try:
            async with asyncio.timeout(budget) as scope:
                async with subscriber:
                    return await self._run_subscribed(
                        subscriber, trigger, handler, cancel_event
                    )
        except TimeoutError as err:
            if scope.expired():
                _LOGGER.warning("[%s] Rendezvous deadline of %ss elapsed", sub_id, budget)
                raise DeadlineExceeded(
                    f"No result within {budget}s (subscription {sub_id})"
                ) from err
            raise

    async def _run_subscribed(
        self,
        subscriber: GqlSubscriber,
        trigger: TriggerAction,
        handler: DataHandler,
        cancel_event: asyncio.Event | None,
    ) -> Payload:
        sub_id = subscriber.subscription_id
        if _is_set(cancel_event):
            raise Cancelled(f"Rendezvous {sub_id} cancelled before dialing")
        try:
            await _unless_cancelled(
                subscriber.open(),
                cancel_event,
                f"Rendezvous {sub_id} cancelled while dialing",
            )
            async with _close_on_cancel(subscriber, cancel_event):
                await subscriber.initialize()
                await subscriber.start()

                _LOGGER.debug("[%s] Subscription ready, invoking trigger", sub_id)
                try:
                    await _unless_cancelled(
                        trigger(),
                        cancel_event,
                        f"Rendezvous {sub_id} cancelled during trigger",
                    )
                except Cancelled:
                    raise
                except Exception as err:
                    raise TriggerFailed(f"Trigger for {sub_id} failed: {err}") from err

                return await subscriber.process(handler)
        except TeamClientError as err:
            if _is_set(cancel_event) and not isinstance(err, (Cancelled, TriggerFailed)):
                raise Cancelled(f"Rendezvous {sub_id} cancelled") from err
            raise


def _is_set(event: asyncio.Event | None) -> bool:
    return event is not None and event.is_set()


async def _unless_cancelled(
    aw: Awaitable[_T], cancel_event: asyncio.Event | None, message: str
) -> _T:
    """Await ``aw`` unless ``cancel_event`` fires first.

    A result or error from ``aw`` wins over a simultaneous cancellation.

    Raises:
        Cancelled: ``cancel_event`` fired before ``aw`` finished.
    """
    if cancel_event is None:
        return await aw

    work = asyncio.ensure_future(aw)
    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not work.done():
            work.cancel()
        # wait() does not re-raise the children's CancelledError
        await asyncio.wait({work, waiter})

    if work.cancelled():
        _LOGGER.info("%s", message)
        raise Cancelled(message)
    return work.result()


@asynccontextmanager
async def _close_on_cancel(
    subscriber: GqlSubscriber, cancel_event: asyncio.Event | None
) -> AsyncIterator[None]:
    """Force-close ``subscriber`` when ``cancel_event`` fires.

    The watcher lives exactly as long as this block.
    """
    if cancel_event is None:
        yield
        return

    async def watch() -> None:
        await cancel_event.wait()
        _LOGGER.info("[%s] Cancellation requested", subscriber.subscription_id)
        await subscriber.close()

    watcher = asyncio.create_task(watch())
    try:
        yield
    finally:
        # Once the event fired the watcher owns the close; let it finish.
        if not cancel_event.is_set():
            watcher.cancel()
        # wait() does not re-raise the watcher's CancelledError
        await asyncio.wait({watcher})
        if not watcher.cancelled() and watcher.exception() is not None:
            _LOGGER.warning(
                "[%s] Cancellation watcher failed: %s",
                subscriber.subscription_id,
                watcher.exception(),
            )


async def run_rendezvous(
    endpoint: str,
    credential: str,
    request: GqlRequest,
    trigger: TriggerAction,
    handler: DataHandler,
    *,
    deadline: float | None = None,
    cancel_event: asyncio.Event | None = None,
    timeouts: TimeoutSettings | None = None,
) -> Payload:
    """Run a single rendezvous.

    ``timeouts`` supplies the read, write and connect windows and, unless
    ``deadline`` is given, the overall budget. Defaults apply when omitted.
    """
    timeouts = timeouts or TimeoutSettings()
    coordinator = RendezvousCoordinator(
        deadline=timeouts.rendezvous if deadline is None else deadline,
        read_timeout=timeouts.read,
        write_timeout=timeouts.write,
        connect_timeout=timeouts.connect,
    )
    return await coordinator.run(
        endpoint,
        credential,
        request,
        trigger,
        handler,
        cancel_event=cancel_event,
    )
