from __future__ import annotations

import logging
import selectors
import signal
import socket
import threading
from typing import Hashable

from .broadcast import BroadcastSink
from .config import RelayRuntimeConfig
from .messages import OutboundMessage, leave_notice
from .router import MessageRouter
from .session import Session, SessionTable, UnknownSessionError
from .stats import StatsManager
from .util import fmt_peer


class RelayStartupError(RuntimeError):
    """The listening endpoint could not be created, bound or listened on."""


class RelayFatalError(RuntimeError):
    """The relay loop cannot continue."""


class RelayService:
    """
    Single-threaded relay loop.

    One selector watches the listening socket and every session stream.
    The session table is only touched from ``poll_once``, so no locking is
    needed; ``stop`` only sets an event and is safe from a signal handler.
    """

    def __init__(self, config: RelayRuntimeConfig) -> None:
        self.config = config
        self.log = logging.getLogger("chatrelay.service")

        self._shutdown = threading.Event()

        self.stats_manager = StatsManager()
        self.sessions = SessionTable()
        self.router = MessageRouter(self.stats_manager)
        self.broadcaster = BroadcastSink(self.stats_manager)

        self._selector = selectors.DefaultSelector()
        self._listener: socket.socket | None = None

    @property
    def address(self) -> tuple[str, int] | None:
        if self._listener is None:
            return None
        name = self._listener.getsockname()
        return str(name[0]), int(name[1])

    def start(self) -> None:
        if self._listener is not None:
            return

        host = str(self.config.host)
        port = int(self.config.port)
        family = socket.AF_INET6 if ":" in host else socket.AF_INET

        listener: socket.socket | None = None
        try:
            listener = socket.socket(family, socket.SOCK_STREAM)
            listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            listener.bind((host, port))
            listener.listen(int(self.config.backlog))
            listener.setblocking(False)
        except OSError as e:
            if listener is not None:
                listener.close()
            self.log.error("Cannot listen on %s:%s: %s", host, port, e)
            raise RelayStartupError(f"cannot listen on {host}:{port}: {e}") from e

        self._listener = listener
        self._selector.register(listener, selectors.EVENT_READ, data=None)
        self.stats_manager.set_start_time()

        bound = self.address
        self.log.info(
            "Relay listening on %s:%s backlog=%s recv_bufsize=%s",
            bound[0] if bound else host,
            bound[1] if bound else port,
            self.config.backlog,
            self.config.recv_bufsize,
        )

    def poll_once(self, timeout: float | None = None) -> None:
        """Wait for readiness once and dispatch everything that is ready."""
        listener = self._listener
        if listener is None:
            raise RelayFatalError("relay is not started")
        if listener.fileno() < 0:
            raise RelayFatalError("listening socket is no longer valid")

        try:
            events = self._selector.select(timeout)
        except OSError as e:
            self.stats_manager.inc("wait_errors")
            self.log.warning("Readiness wait failed: %s", e)
            return

        # Captured before any accept or removal so a departure in this pass
        # can neither skip nor repeat a ready neighbour.
        listener_ready = False
        ready: list[Hashable] = []
        for key, _mask in events:
            if key.data is None:
                listener_ready = True
            else:
                ready.append(key.fileobj)

        if listener_ready:
            self._accept(listener)

        for handle in ready:
            self._service(handle)

    def _accept(self, listener: socket.socket) -> None:
        try:
            conn, addr = listener.accept()
        except OSError as e:
            self.stats_manager.inc("accept_errors")
            self.log.error("Accept failed: %s", e)
            return

        timeout = float(self.config.send_timeout_s)
        conn.settimeout(timeout if timeout > 0 else None)

        peer = fmt_peer(addr)
        sess = self.sessions.insert(conn, peer)
        self._selector.register(conn, selectors.EVENT_READ, data=sess)
        self.stats_manager.inc("accepted")
        self.log.info("New client connected (%s)", peer)

        self.broadcaster.send_to(sess, self.config.prompt)

    def _service(self, handle: Hashable) -> None:
        sess = self.sessions.get(handle)
        if sess is None:
            self.log.debug("Ready handle is no longer in the session table")
            return

        try:
            data = sess.handle.recv(int(self.config.recv_bufsize))
        except OSError as e:
            self._depart(handle, reason=str(e) or type(e).__name__)
            return

        if not data:
            self._depart(handle, reason="eof")
            return

        for message in self.router.route(self.sessions, handle, data):
            self._broadcast(message)

    def _broadcast(self, message: OutboundMessage) -> int:
        targets = [sess for _handle, sess in self.sessions.snapshot()]
        return self.broadcaster.deliver(message, targets)

    def _depart(self, handle: Hashable, *, reason: str) -> None:
        try:
            sess = self.sessions.remove(handle)
        except UnknownSessionError:
            self.log.warning("Departure for a handle that is not in the session table")
            return

        self._unwatch(sess)
        self.stats_manager.inc("disconnects")

        if sess.display_name is None:
            self.log.info(
                "Client (%s) left before registering reason=%s age_s=%.1f",
                sess.peer,
                reason,
                sess.age_s(),
            )
            return

        self.stats_manager.inc("parts")
        self.log.info(
            "%s disconnected peer=%s reason=%s age_s=%.1f",
            sess.display_name,
            sess.peer,
            reason,
            sess.age_s(),
        )
        self._broadcast(leave_notice(sess.display_name))

    def _unwatch(self, sess: Session) -> None:
        try:
            self._selector.unregister(sess.handle)
        except (KeyError, ValueError):
            pass
        try:
            sess.handle.close()
        except OSError:
            pass

    def run_forever(self) -> None:
        if self._listener is None:
            self.start()

        previous = {
            signum: signal.signal(signum, lambda *_: self.stop())
            for signum in (signal.SIGINT, signal.SIGTERM)
        }

        try:
            while not self._shutdown.is_set():
                self.poll_once(float(self.config.poll_interval_s))
        finally:
            self.close()
            for signum, handler in previous.items():
                signal.signal(signum, handler)

    def stop(self) -> None:
        self._shutdown.set()

    def close(self) -> None:
        """Close every session stream and the listener."""
        self.log.info("Relay stopping\n%s", self.stats_manager.format_stats(self.sessions))
        names = self.sessions.names()
        if names:
            self.log.info("Disconnecting %s", ", ".join(names))

        for sess in self.sessions.clear_all():
            self._unwatch(sess)

        listener = self._listener
        self._listener = None
        if listener is not None:
            try:
                self._selector.unregister(listener)
            except (KeyError, ValueError):
                pass
            listener.close()

        self._selector.close()
