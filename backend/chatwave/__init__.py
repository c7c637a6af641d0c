"""ChatWave: real-time multi-room chat backend."""

__version__ = "0.1.0"
