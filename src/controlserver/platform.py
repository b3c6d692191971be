"""
=============================================================================
PLATFORM CAPABILITIES
=============================================================================

A Platform bundles the process-level capabilities the server relies on
but does not own:

    executor          Where background work runs (serve_in_background)
    fatal()           Which errors must never be caught and recovered
    report_failure()  What to do with a non-fatal, unexpected error
    report_fatal()    What to do with a fatal one (never returns)
    signal handlers   Process-wide OS signal registration

Every capability can be swapped without subclassing:

    platform = Platform().with_report_failure(my_reporter)

Platforms are immutable; each with_*() call returns a modified copy.

=============================================================================
SIGNALS
=============================================================================

Signal handlers are process-global and may only be installed from the
main thread. add_signal_handler() returns False instead of raising when
that is not possible (unknown signal name, Windows, worker thread), so
callers can treat signal support as optional.

=============================================================================
"""

import logging
import signal
import sys
import threading
import traceback
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, NoReturn


logger = logging.getLogger(__name__)


FATAL_ERRORS = (MemoryError, SystemExit, KeyboardInterrupt, GeneratorExit)

# Handlers that were in place before we installed ours, by signal number.
_original_handlers: Dict[int, Any] = {}


def default_fatal(error: BaseException) -> bool:
    """Errors that must propagate rather than be reported and survived."""
    return isinstance(error, FATAL_ERRORS)


def default_report_failure(error: BaseException) -> None:
    logger.error(
        f"Unhandled failure: {type(error).__name__}: {error}",
        exc_info=(type(error), error, error.__traceback__),
    )


def default_report_fatal(error: BaseException) -> NoReturn:
    logger.critical(f"Fatal error: {type(error).__name__}: {error}")
    raise error


def _default_executor() -> Executor:
    return ThreadPoolExecutor(max_workers=4, thread_name_prefix="controlserver")


def _resolve_signal(name: str):
    name = name.upper()
    if not name.startswith("SIG"):
        name = "SIG" + name
    return getattr(signal, name, None)


def dump_all_threads() -> str:
    """Render the current stack of every live thread."""
    frames = sys._current_frames()
    lines = []
    for thread in threading.enumerate():
        frame = frames.get(thread.ident)
        lines.append(f'Thread "{thread.name}" (ident={thread.ident}, daemon={thread.daemon})')
        if frame is not None:
            lines.extend(line.rstrip("\n") for line in traceback.format_stack(frame))
    return "\n".join(lines)


@dataclass(frozen=True)
class Platform:
    """
    The minimum capabilities needed to run the control server.

    Attributes:
        executor: Runs background work.
        fatal: Predicate for errors that must not be recovered from.
        report_failure: Receives non-fatal unexpected errors.
        report_fatal: Receives fatal errors; must not return.
    """

    executor: Executor = field(default_factory=_default_executor)
    fatal: Callable[[BaseException], bool] = default_fatal
    report_failure: Callable[[BaseException], None] = default_report_failure
    report_fatal: Callable[[BaseException], NoReturn] = default_report_fatal

    # ─────────────────────────────────────────────────────────────────────
    # COPY-WITH MODIFIERS
    # ─────────────────────────────────────────────────────────────────────

    def with_executor(self, executor: Executor) -> "Platform":
        return replace(self, executor=executor)

    def with_fatal(self, fatal: Callable[[BaseException], bool]) -> "Platform":
        return replace(self, fatal=fatal)

    def with_report_failure(self, report_failure: Callable[[BaseException], None]) -> "Platform":
        return replace(self, report_failure=report_failure)

    def with_report_fatal(self, report_fatal: Callable[[BaseException], NoReturn]) -> "Platform":
        return replace(self, report_fatal=report_fatal)

    # ─────────────────────────────────────────────────────────────────────
    # SIGNAL HANDLING
    # ─────────────────────────────────────────────────────────────────────

    def add_signal_handler(self, signal_name: str, handler: Callable[[], None]) -> bool:
        """
        Run `handler` whenever the named signal arrives.

        Args:
            signal_name: "TERM", "SIGTERM", "USR2", ...
            handler: Called with no arguments.

        Returns:
            True if the handler was installed.
        """
        signum = _resolve_signal(signal_name)
        if signum is None:
            logger.debug(f"Signal {signal_name} is not available on this platform")
            return False

        def _dispatch(received, frame):
            logger.debug(f"Received {signal.Signals(received).name}")
            handler()

        try:
            previous = signal.signal(signum, _dispatch)
        except (ValueError, OSError) as e:
            # ValueError: not the main thread, or signal not catchable
            logger.debug(f"Cannot install handler for {signal_name}: {e}")
            return False

        _original_handlers.setdefault(signum, previous)
        return True

    def restore_signal_handlers(self) -> None:
        """Put back every handler replaced through add_signal_handler()."""
        for signum, handler in list(_original_handlers.items()):
            try:
                signal.signal(signum, handler)
            except (ValueError, OSError) as e:
                logger.debug(f"Cannot restore handler for signal {signum}: {e}")
                continue
            del _original_handlers[signum]

    def with_interrupt_handler(self, handler: Callable[[], None]) -> bool:
        """Use SIGUSR2 to run `handler`."""
        return self.add_signal_handler("USR2", handler)

    def on_interrupt_signal(self) -> bool:
        """Log a stack dump of every thread when SIGUSR2 arrives."""
        return self.with_interrupt_handler(lambda: logger.info("Thread dump:\n" + dump_all_threads()))

    def shutdown(self, wait: bool = True) -> None:
        """Shut down the executor."""
        self.executor.shutdown(wait=wait)
