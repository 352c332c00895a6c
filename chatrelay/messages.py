"""Outbound message type and server notice builders."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Hashable

from .constants import CHAT_TEMPLATE, JOIN_TEMPLATE, LEAVE_TEMPLATE


@dataclass(frozen=True)
class OutboundMessage:
    """One message to fan out. ``exclude`` is never a delivery target."""

    body: str
    exclude: Hashable | None = None


def join_notice(name: str, *, exclude: Hashable | None = None) -> OutboundMessage:
    return OutboundMessage(JOIN_TEMPLATE.format(name=name), exclude=exclude)


def leave_notice(name: str) -> OutboundMessage:
    # The departing session is already gone from the table, so nobody is excluded.
    return OutboundMessage(LEAVE_TEMPLATE.format(name=name))


def chat_message(name: str, text: str, *, exclude: Hashable | None) -> OutboundMessage:
    return OutboundMessage(CHAT_TEMPLATE.format(name=name, text=text), exclude=exclude)
