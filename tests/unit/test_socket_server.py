"""
Unit tests for the listener: accept-loop resilience and signal handling.
"""

import errno
import logging
import signal
import socket
import threading
import time

import pytest

from stdinhttp.config import ServerConfig
from stdinhttp.core.socket_server import SocketServer


@pytest.fixture
def listener_config() -> ServerConfig:
    return ServerConfig(host="127.0.0.1", port=0, timeout=1.0)


class BackgroundListener:
    """Runs SocketServer.start() on a thread and collects handled connections."""

    def __init__(self, server: SocketServer, handler=None):
        self.server = server
        self.handled = []
        self._handler = handler or self._record
        self._thread = threading.Thread(
            target=self.server.start, args=(self._handler,), daemon=True
        )

    def _record(self, conn):
        self.handled.append(conn)
        conn.close()

    def __enter__(self):
        self._thread.start()
        assert self.server.wait_until_ready(timeout=5.0)
        return self

    def __exit__(self, *exc):
        self.server.shutdown()
        self._thread.join(timeout=5.0)
        return False

    def connect(self):
        sock = socket.create_connection(self.server.address, timeout=5.0)
        # Wait for the server to close its side
        try:
            sock.recv(1)
        finally:
            sock.close()


def wait_for(predicate, timeout=5.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


class TestAcceptLoop:

    def test_accept_error_is_logged_and_loop_continues(self, listener_config, monkeypatch, caplog):
        original_accept = socket.socket.accept
        failures = []

        def flaky_accept(sock):
            if not failures:
                failures.append(1)
                raise OSError(errno.EMFILE, "Too many open files")
            return original_accept(sock)

        monkeypatch.setattr(socket.socket, "accept", flaky_accept)

        with caplog.at_level(logging.ERROR, logger="stdinhttp.core.socket_server"):
            with BackgroundListener(SocketServer(listener_config)) as listener:
                listener.connect()
                assert wait_for(lambda: len(listener.handled) == 1)

        assert failures == [1]
        assert "Accept error" in caplog.text

    def test_failing_handler_does_not_stop_listener(self, listener_config, caplog):
        handled = []

        def handler(conn):
            if not handled:
                handled.append("boom")
                raise RuntimeError("handler exploded")
            handled.append(conn.id)
            conn.close()

        with caplog.at_level(logging.ERROR, logger="stdinhttp.core.socket_server"):
            with BackgroundListener(SocketServer(listener_config), handler) as listener:
                listener.connect()   # Closed by the loop after the failure
                listener.connect()
                assert wait_for(lambda: len(handled) == 2)
                assert listener.server.is_running

        assert "Failed to hand off connection" in caplog.text

    def test_bad_connection_settings_do_not_stop_listener(self, caplog):
        """A value settimeout() rejects fails that client only."""
        config = ServerConfig(host="127.0.0.1", port=0, timeout=float("nan"))
        server = SocketServer(config)

        with caplog.at_level(logging.ERROR, logger="stdinhttp.core.socket_server"):
            with BackgroundListener(server) as listener:
                listener.connect()
                listener.connect()
                assert listener.server.is_running
                assert listener.handled == []

        assert caplog.text.count("Failed to hand off connection") == 2


class TestSignals:

    def test_handlers_installed_on_main_thread_and_restored(self, listener_config):
        assert threading.current_thread() is threading.main_thread()
        before = {sig: signal.getsignal(sig) for sig in (signal.SIGINT, signal.SIGTERM)}
        during = {}
        server = SocketServer(listener_config)

        def on_ready():
            for sig in before:
                during[sig] = signal.getsignal(sig)
            server.shutdown()

        server.start(lambda conn: conn.close(), on_ready=on_ready)

        for sig in before:
            assert during[sig] is not before[sig]
            assert callable(during[sig])
            assert signal.getsignal(sig) is before[sig]

    def test_signal_triggers_shutdown(self, listener_config):
        server = SocketServer(listener_config)

        def on_ready():
            signal.getsignal(signal.SIGTERM)(signal.SIGTERM, None)

        server.start(lambda conn: conn.close(), on_ready=on_ready)

        assert not server.is_running

    def test_no_handlers_off_main_thread(self, listener_config):
        before = {sig: signal.getsignal(sig) for sig in (signal.SIGINT, signal.SIGTERM)}
        during = {}
        server = SocketServer(listener_config)

        def on_ready():
            for sig in before:
                during[sig] = signal.getsignal(sig)
            server.shutdown()

        thread = threading.Thread(
            target=server.start, args=(lambda conn: conn.close(),), kwargs={"on_ready": on_ready}
        )
        thread.start()
        thread.join(timeout=5.0)

        assert not thread.is_alive()
        assert during == before
