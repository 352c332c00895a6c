"""Statistics tracking and reporting for the relay."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .session import SessionTable


class StatsManager:
    """
    Lifetime counters for the relay.

    Tracks:
    - Connections accepted and accept/wait failures
    - Joins, parts and disconnects
    - Messages forwarded and blank chunks dropped
    - Deliveries, delivery failures and bytes in/out
    """

    def __init__(self) -> None:
        self.started_wall_time: float | None = None
        self.started_monotonic: float | None = None

        # Python int has arbitrary precision, so overflow is not a concern.
        self._counters: dict[str, int] = {
            "accepted": 0,
            "accept_errors": 0,
            "wait_errors": 0,
            "joins": 0,
            "parts": 0,
            "disconnects": 0,
            "msgs_forwarded": 0,
            "chunks_dropped": 0,
            "deliveries": 0,
            "delivery_failures": 0,
            "bytes_in": 0,
            "bytes_out": 0,
        }

    def set_start_time(self) -> None:
        self.started_wall_time = time.time()
        self.started_monotonic = time.monotonic()

    def inc(self, key: str, delta: int = 1) -> None:
        self._counters[key] = int(self._counters.get(key, 0)) + int(delta)

    def get(self, key: str) -> int:
        return int(self._counters.get(key, 0))

    def snapshot(self) -> dict[str, int]:
        return dict(self._counters)

    def format_stats(self, table: SessionTable | None = None) -> str:
        """Format current statistics as a human-readable string."""
        from . import __version__

        started_mono = self.started_monotonic
        uptime_s = (time.monotonic() - started_mono) if started_mono is not None else 0.0
        c = dict(self._counters)

        lines: list[str] = []
        lines.append(f"chatrelay {__version__} stats")
        lines.append(f"uptime_s={uptime_s:.1f}")
        if table is not None:
            s = table.get_stats()
            lines.append(
                f"clients_total={s['total']} "
                f"clients_registered={s['registered']} "
                f"clients_anonymous={s['anonymous']}"
            )
        lines.append(
            "connections: accepted={} accept_errors={} wait_errors={} disconnects={}".format(
                c.get("accepted", 0),
                c.get("accept_errors", 0),
                c.get("wait_errors", 0),
                c.get("disconnects", 0),
            )
        )
        lines.append(
            "events: joins={} parts={} msgs_fwd={} dropped={}".format(
                c.get("joins", 0),
                c.get("parts", 0),
                c.get("msgs_forwarded", 0),
                c.get("chunks_dropped", 0),
            )
        )
        lines.append(
            "io: deliveries={} failures={} bytes_in={} bytes_out={}".format(
                c.get("deliveries", 0),
                c.get("delivery_failures", 0),
                c.get("bytes_in", 0),
                c.get("bytes_out", 0),
            )
        )
        return "\n".join(lines)
