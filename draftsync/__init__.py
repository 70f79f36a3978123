"""Draft synchronization: wire protocol, relay, storage and the client adapter."""

from .adapter import DraftClient
from .channel import Channel, LocalHub, WebSocketChannel
from .server import RelayServer
from .storage import CardCatalog, DraftStore, MemoryCardCatalog, MemoryDraftStore

__all__ = [
    "DraftClient",
    "Channel",
    "LocalHub",
    "WebSocketChannel",
    "RelayServer",
    "CardCatalog",
    "DraftStore",
    "MemoryCardCatalog",
    "MemoryDraftStore",
]
