"""Process-wide service instances.

Routers fetch their collaborators through these getters. Everything is built
lazily from :func:`chatwave.config.get_config`, so the app works whether or not
the FastAPI lifespan has run (``TestClient(app)`` without a context manager
skips it). Tests call :func:`reset_services` between cases.
"""
import logging
from typing import Optional

from chatwave.chat.coordinator import ChatCoordinator
from chatwave.chat.fabric import fabric
from chatwave.chat.persistence import PersistenceDispatcher
from chatwave.chat.presence import presence
from chatwave.config import get_config
from chatwave.storage.database import ChatDatabase
from chatwave.storage.messages import MessageStore
from chatwave.storage.rooms import RoomDirectory

logger = logging.getLogger(__name__)

_message_store: Optional[MessageStore] = None
_room_directory: Optional[RoomDirectory] = None
_dispatcher: Optional[PersistenceDispatcher] = None
_coordinator: Optional[ChatCoordinator] = None


def get_database() -> ChatDatabase:
    return ChatDatabase.get_instance(get_config().storage.db_path)


def get_message_store() -> MessageStore:
    global _message_store
    if _message_store is None:
        _message_store = MessageStore(get_database())
    return _message_store


def get_room_directory() -> RoomDirectory:
    global _room_directory
    if _room_directory is None:
        _room_directory = RoomDirectory(get_database())
        if get_config().rooms.seed_defaults:
            _room_directory.seed_defaults()
    return _room_directory


def get_dispatcher() -> PersistenceDispatcher:
    global _dispatcher
    if _dispatcher is None:
        settings = get_config().persistence
        _dispatcher = PersistenceDispatcher(
            get_message_store(),
            workers=settings.workers,
            queue_size=settings.queue_size,
        )
    return _dispatcher


def get_coordinator() -> ChatCoordinator:
    global _coordinator
    if _coordinator is None:
        chat = get_config().chat
        rooms = get_room_directory()
        messages = get_message_store()
        if get_config().rooms.seed_welcome_messages:
            messages.seed_welcome_messages()
        _coordinator = ChatCoordinator(
            registry=presence,
            fabric=fabric,
            room_exists=rooms.exists,
            recent_messages=messages.recent,
            dispatcher=get_dispatcher(),
            history_limit=chat.history_limit,
            max_content_length=chat.max_content_length,
            system_sender=chat.system_sender,
        )
    return _coordinator


def reset_services() -> None:
    """Stop background workers and drop every cached instance."""
    global _message_store, _room_directory, _dispatcher, _coordinator
    if _dispatcher is not None:
        _dispatcher.stop()
    _message_store = None
    _room_directory = None
    _dispatcher = None
    _coordinator = None
    presence.clear()
    fabric.clear()
    logger.debug("Service instances reset")
