from __future__ import annotations

import logging
import socket
import sys
import threading
from typing import TextIO

from .config import ClientRuntimeConfig
from .constants import CLIENT_PROMPT, PROMPT_USERNAME
from .util import decode_chunk, encode_text


class ChatClient:
    """
    Terminal client for the relay.

    Two flows share one stream: a receiver thread that displays whatever
    arrives, and an input thread that forwards typed lines. Both observe a
    single shutdown event. Local ``quit``, local EOF, remote EOF and socket
    errors all set it; ``run`` then tears the stream down.
    """

    def __init__(
        self,
        config: ClientRuntimeConfig,
        *,
        stdin: TextIO | None = None,
        stdout: TextIO | None = None,
    ) -> None:
        self.config = config
        self.log = logging.getLogger("chatrelay.client")

        self._stdin = stdin if stdin is not None else sys.stdin
        self._stdout = stdout if stdout is not None else sys.stdout

        self._shutdown = threading.Event()
        # Held while writing to the socket and while marking it closed, so
        # the input flow never sends on a stream that is being torn down.
        self._send_lock = threading.Lock()
        self._output_lock = threading.Lock()

        self._sock: socket.socket | None = None
        self._closed = False
        self._receiver: threading.Thread | None = None
        self._input: threading.Thread | None = None

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown.is_set()

    def connect(self) -> None:
        self._sock = socket.create_connection((self.config.host, int(self.config.port)))
        self.log.debug("Connected to %s:%s", self.config.host, self.config.port)
        self._write("Connected to server!\n")

    def register(self, name: str | None = None) -> bool:
        """Send the display name.

        Prompts on stdin when ``name`` is None, repeating the prompt for
        blank lines. Returns False only on local EOF or a failed send.
        """
        while not name:
            self._write(PROMPT_USERNAME)
            name = self._readline()
            if name is None:
                self._shutdown.set()
                return False
        return self.send(name)

    def send(self, text: str) -> bool:
        if not text:
            return False
        with self._send_lock:
            if self._shutdown.is_set() or self._closed or self._sock is None:
                return False
            try:
                self._sock.sendall(encode_text(text))
            except OSError as e:
                self.log.debug("Send failed: %s", e)
                self._shutdown.set()
                return False
        return True

    def run(self) -> None:
        if self._sock is None:
            raise RuntimeError("client is not connected")

        self._write(f"\nStart chatting (type '{self.config.quit_word}' to exit):\n\n")

        self._receiver = threading.Thread(
            target=self._receive_loop, name="chatrelay-recv"
        )
        # stdin reads cannot be interrupted, so this one must not keep the
        # process alive; the send lock keeps it off the closed stream.
        self._input = threading.Thread(
            target=self._input_loop, name="chatrelay-input", daemon=True
        )
        self._receiver.start()
        self._input.start()

        try:
            self._shutdown.wait()
        finally:
            self.close()

    def close(self) -> None:
        self._shutdown.set()
        with self._send_lock:
            if self._closed:
                return
            self._closed = True
            sock = self._sock

        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass

        receiver = self._receiver
        if receiver is not None and receiver is not threading.current_thread():
            receiver.join()

        if sock is not None:
            sock.close()
        self._write("Disconnected.\n")

    def _receive_loop(self) -> None:
        sock = self._sock
        if sock is None:
            return
        bufsize = int(self.config.recv_bufsize)
        while not self._shutdown.is_set():
            try:
                data = sock.recv(bufsize)
            except OSError as e:
                self.log.debug("Receive failed: %s", e)
                data = b""
            if not data:
                if not self._shutdown.is_set():
                    self._write("\nDisconnected from server\n")
                self._shutdown.set()
                break
            self._display(decode_chunk(data))

    def _input_loop(self) -> None:
        while not self._shutdown.is_set():
            self._write(CLIENT_PROMPT)
            line = self._readline()
            if line is None or line == self.config.quit_word:
                break
            # Empty lines are never sent.
            self.send(line)
        self._shutdown.set()

    def _readline(self) -> str | None:
        line = self._stdin.readline()
        if line == "":
            return None
        return line.rstrip("\r\n")

    def _display(self, text: str) -> None:
        # Clear the half-typed prompt line, print, then redraw the prompt.
        self._write("\r\033[K" + text + "\n" + CLIENT_PROMPT)

    def _write(self, text: str) -> None:
        with self._output_lock:
            try:
                self._stdout.write(text)
                self._stdout.flush()
            except (OSError, ValueError):
                pass
