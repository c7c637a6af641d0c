"""Real-time chat core.

Components:
    - PresenceRegistry: connection id -> session store (presence.py)
    - BroadcastFabric: topic fan-out and private queues (fabric.py)
    - PersistenceDispatcher: fire-and-forget message storage (persistence.py)
    - ChatCoordinator: join/send/typing/leave/disconnect handling (coordinator.py)
    - router: the /ws WebSocket endpoint (router.py)
"""
