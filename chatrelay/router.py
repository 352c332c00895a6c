from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Hashable

from .messages import OutboundMessage, chat_message, join_notice
from .session import SessionTable
from .util import decode_chunk

if TYPE_CHECKING:
    from .stats import StatsManager


class MessageRouter:
    """
    Interprets inbound chunks for the relay.

    This class is responsible for:
    - Treating a session's first chunk as its display name
    - Turning every later chunk into a chat line for the other sessions
    - Dropping chunks that carry no visible text

    The session table is passed in per call and never retained.
    """

    def __init__(self, stats: StatsManager | None = None) -> None:
        self.stats = stats
        self.log = logging.getLogger("chatrelay.router")

    def _inc(self, key: str, delta: int = 1) -> None:
        if self.stats is not None:
            self.stats.inc(key, delta)

    def route(
        self, table: SessionTable, handle: Hashable, chunk: bytes
    ) -> list[OutboundMessage]:
        sess = table.get(handle)
        if sess is None:
            return []

        self._inc("bytes_in", len(chunk))
        text = decode_chunk(chunk)

        if not sess.registered:
            return self._handle_registration(table, handle, text)
        return self._handle_chat(sess.display_name, handle, sess.peer, text)

    def _handle_registration(
        self, table: SessionTable, handle: Hashable, name: str
    ) -> list[OutboundMessage]:
        # Names are taken verbatim: no trimming, no uniqueness check.
        sess = table.set_name(handle, name)
        self._inc("joins")
        self.log.info("%s has joined the chat! peer=%s", name, sess.peer)
        return [join_notice(name, exclude=handle)]

    def _handle_chat(
        self, name: str | None, handle: Hashable, peer: str, text: str
    ) -> list[OutboundMessage]:
        if not text.strip():
            self._inc("chunks_dropped")
            if self.log.isEnabledFor(logging.DEBUG):
                self.log.debug("Dropped blank chunk peer=%s nick=%r", peer, name)
            return []

        self._inc("msgs_forwarded")
        self.log.info("%s: %s", name, text)
        return [chat_message(str(name), text, exclude=handle)]
