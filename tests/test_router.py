from chatrelay.messages import OutboundMessage
from chatrelay.router import MessageRouter
from chatrelay.session import SessionTable
from chatrelay.stats import StatsManager


def _table(*handles: object) -> SessionTable:
    table = SessionTable()
    for h in handles:
        table.insert(h)
    return table


def test_first_chunk_registers_and_announces_join() -> None:
    a = object()
    table = _table(a)
    out = MessageRouter().route(table, a, b"alice")

    assert out == [OutboundMessage("alice has joined the chat!", exclude=a)]
    assert table.get(a).display_name == "alice"


def test_first_chunk_is_never_chat() -> None:
    a = object()
    table = _table(a)
    router = MessageRouter()
    out = router.route(table, a, b"hello everyone")

    assert all(": " not in m.body for m in out)
    assert out[0].body == "hello everyone has joined the chat!"


def test_later_chunks_are_prefixed_chat() -> None:
    a = object()
    table = _table(a)
    router = MessageRouter()
    router.route(table, a, b"alice")

    out = router.route(table, a, b"hi there\n")
    assert out == [OutboundMessage("alice: hi there\n", exclude=a)]
    assert table.get(a).display_name == "alice"


def test_blank_chat_chunk_is_dropped() -> None:
    a = object()
    table = _table(a)
    stats = StatsManager()
    router = MessageRouter(stats)
    router.route(table, a, b"alice")

    assert router.route(table, a, b"  \r\n\t") == []
    assert stats.get("chunks_dropped") == 1
    assert stats.get("msgs_forwarded") == 0


def test_names_are_taken_verbatim_and_may_repeat() -> None:
    a, b = object(), object()
    table = _table(a, b)
    router = MessageRouter()

    router.route(table, a, b" alice\n")
    router.route(table, b, b" alice\n")
    assert table.names() == [" alice\n", " alice\n"]


def test_invalid_utf8_is_replaced() -> None:
    a = object()
    table = _table(a)
    router = MessageRouter()
    router.route(table, a, b"al\xffice")
    assert table.get(a).display_name == "al�ice"


def test_unknown_handle_produces_nothing() -> None:
    table = _table(object())
    assert MessageRouter().route(table, object(), b"hello") == []


def test_counters() -> None:
    a = object()
    table = _table(a)
    stats = StatsManager()
    router = MessageRouter(stats)
    router.route(table, a, b"alice")
    router.route(table, a, b"one")
    router.route(table, a, b"two")

    assert stats.get("joins") == 1
    assert stats.get("msgs_forwarded") == 2
    assert stats.get("bytes_in") == len(b"alice") + len(b"one") + len(b"two")
