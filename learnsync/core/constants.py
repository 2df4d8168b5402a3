"""
Engine constants.

Centralizes thresholds, window sizes and storage names so the mastery
engine, the stores and the migration all agree on them.
"""

from __future__ import annotations

# =============================================================================
# Rolling Windows
# =============================================================================
ROLLING_WINDOW_SIZE = 10  # History kept per topic, FIFO
MIN_QUESTIONS_TO_JUDGE = 5  # Recent window used by the recommendation policy
NEUTRAL_ACCURACY = 0.5  # Accuracy reported for an empty history

# =============================================================================
# Recommendation Thresholds
# =============================================================================
BUMP_UP_THRESHOLD = 0.80  # Inclusive
BUMP_DOWN_THRESHOLD = 0.40  # Inclusive
STREAK_FARMING_THRESHOLD = 15  # Questions at easy before the guard applies
STREAK_FARMING_ACCURACY = 0.85  # Full-window accuracy that counts as farming
OSCILLATION_LIMIT = 3  # Difficulty changes per session before a lock is suggested

# =============================================================================
# Sync Defaults (overridable through Settings)
# =============================================================================
DEFAULT_MAX_RETRIES = 3
DEFAULT_IDENTITY_TIMEOUT_SECONDS = 10.0
DEFAULT_MIGRATION_BATCH_SIZE = 100
DEFAULT_HISTORY_LIMIT = 1000

# =============================================================================
# Collections (remote table names, mirrored locally)
# =============================================================================
HISTORY_COLLECTION = "learning_history"
SCORES_COLLECTION = "learning_scores"
MASTERY_COLLECTION = "learning_mastery"

LEARNING_COLLECTIONS = (HISTORY_COLLECTION, SCORES_COLLECTION, MASTERY_COLLECTION)

# Upsert conflict keys (the remote store prefixes user_id)
TOPIC_KEY = ("subject", "topic")

# =============================================================================
# Local Keys
# =============================================================================
QUEUE_KEY = "neural-offline-queue"
SYNC_STATUS_KEY = "neural-sync-status"
MIGRATION_MARKER_PREFIX = "learning-migrated-"


def topic_key(subject: str, topic: str) -> str:
    """Display key for a (subject, topic) pair."""
    return f"{subject}-{topic}"
