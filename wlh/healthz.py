from __future__ import annotations

import logging
import os
import signal
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Sequence

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from .errors import BindError
from .listener import KeepAliveListener
from .settings import settings
from .tasks import TaskGroup

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HealthCheck:
    """A named check; `check` raises when unhealthy."""

    name: str
    check: Callable[[], None]


PING = HealthCheck("ping", lambda: None)


def _run_check(hc: HealthCheck) -> Exception | None:
    try:
        hc.check()
    except Exception as e:
        return e
    return None


def _text(body: str, status_code: int = 200) -> PlainTextResponse:
    return PlainTextResponse(body, status_code=status_code, headers={"X-Content-Type-Options": "nosniff"})


def build_app(name: str, checks: Iterable[HealthCheck] = ()) -> FastAPI:
    """Healthz app: `/healthz` runs every check, `/healthz/<check>` runs one."""
    all_checks: list[HealthCheck] = [PING, *checks]
    by_name = {hc.name: hc for hc in all_checks}

    app = FastAPI(title=name, docs_url=None, redoc_url=None, openapi_url=None)

    @app.middleware("http")
    async def recover(request: Request, call_next):
        try:
            return await call_next(request)
        except Exception:
            logger.exception("%s: panic while serving %s %s", name, request.method, request.url.path)
            return _text("Internal Server Error", status_code=500)

    @app.get("/healthz")
    def healthz(request: Request) -> PlainTextResponse:
        verbose = "verbose" in request.query_params
        lines: list[str] = []
        failed = False
        for hc in all_checks:
            err = _run_check(hc)
            if err is None:
                lines.append(f"[+]{hc.name} ok")
                continue
            failed = True
            lines.append(f"[-]{hc.name} failed: reason withheld")
            logger.info("healthz check %s failed: %s", hc.name, err)
        if failed:
            return _text("\n".join(lines) + "\nhealthz check failed\n", status_code=500)
        if not verbose:
            return _text("ok")
        return _text("\n".join(lines) + "\nhealthz check passed\n")

    @app.get("/healthz/{check_name}")
    def healthz_single(check_name: str) -> PlainTextResponse:
        hc = by_name.get(check_name)
        if hc is None:
            return _text("404 page not found\n", status_code=404)
        err = _run_check(hc)
        if err is not None:
            return _text(f"internal server error: {err}\n", status_code=500)
        return _text("ok")

    return app


class ServerState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"
    ERROR = "error"
    FATAL = "fatal"


_TRANSITIONS: dict[ServerState, set[ServerState]] = {
    ServerState.IDLE: {ServerState.LISTENING, ServerState.ERROR},
    ServerState.LISTENING: {ServerState.SHUTTING_DOWN, ServerState.STOPPED, ServerState.FATAL},
    ServerState.SHUTTING_DOWN: {ServerState.STOPPED},
}


class TerminationReason(str, Enum):
    SHUTDOWN = "shutdown"  # stop signal or shutdown()
    FATAL = "fatal"  # serve loop returned on its own
    PANIC = "panic"  # a background task raised


@dataclass(frozen=True)
class Termination:
    reason: TerminationReason
    error: BaseException | None = None


def parse_bind_address(address: str) -> tuple[str, int]:
    """Split `host:port`; `:port` means every interface, `[v6]:port` for IPv6."""
    host, sep, port = address.rpartition(":")
    if not sep:
        raise BindError(f"failed to create listener: missing port in address {address!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        return host, int(port)
    except ValueError:
        raise BindError(f"failed to create listener: invalid port in address {address!r}") from None


def format_address(host: str, port: int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def _exit_process() -> None:
    logging.shutdown()
    os._exit(255)


class HealthServer:
    """Serves healthz until SIGINT/SIGTERM (or shutdown()).

    `start()` binds and returns right away; a shutdown watcher and the serve
    loop then run in a TaskGroup, and `wait()` reports how they ended. If the
    serve loop stops without a prior stop request the server is FATAL and
    `on_fatal` runs, which by default ends the process.

    With `grace_period_s` 0 (the default) shutdown closes immediately without
    waiting for in-flight requests.
    """

    def __init__(
        self,
        bind_address: str,
        name: str,
        checks: Iterable[HealthCheck] = (),
        grace_period_s: float = settings.shutdown_grace_s,
        keepalive_period_s: float = settings.keepalive_period_s,
        max_header_bytes: int = settings.max_header_bytes,
        access_log: bool = settings.access_log,
        stop_signals: Sequence[int] = (signal.SIGINT, signal.SIGTERM),
        on_fatal: Callable[[], None] | None = None,
    ) -> None:
        self.bind_address = bind_address
        self.name = name
        self.grace_period_s = max(0.0, float(grace_period_s))
        self.keepalive_period_s = keepalive_period_s
        self.max_header_bytes = max_header_bytes
        self.access_log = access_log
        self.stop_signals = tuple(stop_signals)
        self.on_fatal = on_fatal or _exit_process
        self.app = build_app(name, checks)

        self.listener: KeepAliveListener | None = None
        self.server: uvicorn.Server | None = None

        self._state = ServerState.IDLE
        self._state_lock = threading.Lock()
        # One-shot stop request; _wake also fires when the serve loop ends.
        self._stop = threading.Event()
        self._wake = threading.Event()
        self._tasks = TaskGroup(f"healthz-{name}")
        self._prev_handlers: dict[int, object] = {}
        self._display_address = self.bind_address

    @property
    def state(self) -> ServerState:
        with self._state_lock:
            return self._state

    def _set_state(self, new: ServerState) -> bool:
        with self._state_lock:
            if new not in _TRANSITIONS.get(self._state, set()):
                return False
            self._state = new
            return True

    @property
    def address(self) -> tuple[str, int]:
        if self.listener is None:
            raise RuntimeError("health server is not listening")
        host, port = self.listener.getsockname()[:2]
        return host, port

    def start(self) -> "HealthServer":
        if self.state is not ServerState.IDLE:
            raise RuntimeError(f"health server {self.name!r} was already started")
        try:
            host, port = parse_bind_address(self.bind_address)
            try:
                self.listener = KeepAliveListener.open(host, port, period_s=self.keepalive_period_s)
            except OSError as e:
                raise BindError(f"failed to create listener: {e}") from e
            bound_host, bound_port = self.address
            config = uvicorn.Config(
                self.app,
                host=bound_host,
                port=bound_port,
                http="h11",
                ws="none",
                loop="asyncio",  # accepts must go through KeepAliveListener.accept
                lifespan="off",
                log_config=None,
                access_log=self.access_log,
                h11_max_incomplete_event_size=self.max_header_bytes,
                timeout_graceful_shutdown=self.grace_period_s or None,
            )
            self.server = uvicorn.Server(config)
        except Exception:
            self._set_state(ServerState.ERROR)
            if self.listener is not None:
                self.listener.close()
            raise
        self._set_state(ServerState.LISTENING)
        self._install_signal_handlers()
        self._display_address = format_address(bound_host, bound_port)
        logger.info("Healthz %s listening on %s", self.name, self._display_address)

        self._tasks.spawn("shutdown-watcher", self._watch_for_shutdown)
        self._tasks.spawn("serve", self._serve)
        return self

    def shutdown(self) -> None:
        """Ask the server to stop, same as receiving a stop signal."""
        self._stop.set()
        self._wake.set()

    def wait(self, timeout: float | None = None) -> Termination | None:
        """Join both background tasks; None if they are still running at `timeout`."""
        if self.state in (ServerState.IDLE, ServerState.ERROR):
            raise RuntimeError(f"health server {self.name!r} never started")
        if not self._tasks.join(timeout):
            return None
        self._restore_signal_handlers()

        results = self._tasks.results()
        for key in ("serve", "shutdown-watcher"):
            res = results.get(key)
            if res is not None and res.crashed:
                return Termination(TerminationReason.PANIC, res.error)
        if self.state is ServerState.FATAL:
            return Termination(TerminationReason.FATAL)
        return Termination(TerminationReason.SHUTDOWN)

    def _install_signal_handlers(self) -> None:
        if not self.stop_signals:
            return
        if threading.current_thread() is not threading.main_thread():
            logger.warning("Healthz %s started outside the main thread; stop signals not captured", self.name)
            return
        for sig in self.stop_signals:
            self._prev_handlers[sig] = signal.signal(sig, self._handle_signal)

    def _restore_signal_handlers(self) -> None:
        if not self._prev_handlers or threading.current_thread() is not threading.main_thread():
            return
        for sig, handler in self._prev_handlers.items():
            signal.signal(sig, handler)
        self._prev_handlers.clear()

    def _handle_signal(self, signum: int, frame) -> None:
        logger.info("Received %s", signal.Signals(signum).name)
        self.shutdown()

    def _watch_for_shutdown(self) -> None:
        self._wake.wait()
        if not self._stop.is_set():
            return  # serve loop ended by itself
        if not self._set_state(ServerState.SHUTTING_DOWN):
            return
        logger.info("Shutting down healthz %s (grace period %ss)", self.name, self.grace_period_s)
        self.server.should_exit = True
        if self.grace_period_s <= 0:
            self.server.force_exit = True

    def _serve(self) -> None:
        addr = self._display_address
        try:
            self.server.run(sockets=[self.listener])
        except BaseException as e:
            self._serving_ended(addr, e)
            raise
        self._serving_ended(addr, None)

    def _serving_ended(self, addr: str, error: BaseException | None) -> None:
        self.listener.close()
        self._wake.set()
        msg = f"Stopped listening on {addr}"
        if self._stop.is_set():
            logger.info(msg)
            self._set_state(ServerState.STOPPED)
            return
        logger.critical("%s due to error: %s", msg, error if error is not None else "server exited unexpectedly")
        self._set_state(ServerState.FATAL)
        self.on_fatal()


def start_health_server(bind_address: str, name: str, **kwargs) -> HealthServer:
    """Bind `bind_address` and serve healthz in the background.

    Raises BindError if the address cannot be bound; nothing is started then.
    """
    return HealthServer(bind_address, name, **kwargs).start()
