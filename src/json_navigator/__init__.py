"""Lazy navigation, search and editing of large JSON documents."""

from json_navigator.core.session.controller import DocumentSession, DocumentSessionController
from json_navigator.engine.local import LocalEngine
from json_navigator.engine.remote import HttpEngine
from json_navigator.protocols import EngineProtocol, StateStoreProtocol

__all__ = [
    "DocumentSession",
    "DocumentSessionController",
    "EngineProtocol",
    "HttpEngine",
    "LocalEngine",
    "StateStoreProtocol",
]
