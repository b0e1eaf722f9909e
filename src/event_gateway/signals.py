"""Signal handler setup for graceful shutdown."""

import asyncio
import logging
import signal

logger = logging.getLogger(__name__)


def setup_shutdown_signal_handlers(
    loop: asyncio.AbstractEventLoop,
    shutdown_event: asyncio.Event,
) -> None:
    """Register SIGTERM/SIGINT handlers.

    First signal: sets ``shutdown_event``; consumers finish the current message,
    pending forwards drain, offsets are committed.
    Second signal: cancels every task on the loop.

    On Windows, where add_signal_handler() is not supported, falls back to
    signal.signal().
    """

    def handle_signal(signum: int) -> None:
        name = signal.Signals(signum).name
        if not shutdown_event.is_set():
            logger.info("Received signal, initiating graceful shutdown", extra={"signal": name})
            shutdown_event.set()
        else:
            logger.warning("Received second signal, forcing immediate shutdown...")
            for task in asyncio.all_tasks(loop):
                task.cancel()

    try:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, handle_signal, sig)
    except NotImplementedError:
        def _handler(signum, frame):
            loop.call_soon_threadsafe(handle_signal, signum)

        signal.signal(signal.SIGTERM, _handler)
        signal.signal(signal.SIGINT, _handler)
