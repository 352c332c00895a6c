from __future__ import annotations


class FakeStream:
    """Stand-in for an accepted socket: records writes, optionally fails."""

    def __init__(self, name: str = "", *, fail: bool = False) -> None:
        self.name = name
        self.fail = fail
        self.sent: list[bytes] = []

    def sendall(self, data: bytes) -> None:
        if self.fail:
            raise BrokenPipeError(f"{self.name or 'stream'} is gone")
        self.sent.append(bytes(data))

    def texts(self) -> list[str]:
        return [b.decode("utf-8") for b in self.sent]

    def __repr__(self) -> str:
        return f"FakeStream({self.name!r})"
