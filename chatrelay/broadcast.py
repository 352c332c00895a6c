from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable

from .messages import OutboundMessage
from .session import Session
from .util import encode_text

if TYPE_CHECKING:
    from .stats import StatsManager


class BroadcastSink:
    """
    Best-effort fan-out of outbound messages.

    A failed write is logged and counted, never raised. The broken stream
    is reaped when its own next read fails.
    """

    def __init__(self, stats: StatsManager | None = None) -> None:
        self.stats = stats
        self.log = logging.getLogger("chatrelay.broadcast")

    def _inc(self, key: str, delta: int = 1) -> None:
        if self.stats is not None:
            self.stats.inc(key, delta)

    def send_to(self, sess: Session, text: str) -> bool:
        payload = encode_text(text)
        try:
            sess.handle.sendall(payload)
        except OSError as e:
            self._inc("delivery_failures")
            self.log.debug("Write failed peer=%s nick=%r: %s", sess.peer, sess.display_name, e)
            return False
        self._inc("bytes_out", len(payload))
        return True

    def deliver(self, message: OutboundMessage, targets: Iterable[Session]) -> int:
        delivered = 0
        for sess in targets:
            if message.exclude is not None and sess.handle == message.exclude:
                continue
            if self.send_to(sess, message.body):
                delivered += 1
        self._inc("deliveries", delivered)
        return delivered
