"""
learnsync - adaptive learning-progress engine.

Tracks rolling performance per subject/topic, recommends difficulty
changes, and persists that state across a device-local guest store and
a remote authoritative store with offline queuing and guest migration.
"""

__version__ = "0.3.0"
