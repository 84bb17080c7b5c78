"""
Services module for business logic.

Provides the in-memory behavior profile store for search sessions.
"""

from services.profile_store import (
    BehaviorProfile,
    EventWeights,
    ProfileStore,
    ProfileSweeper,
)

__all__ = [
    "BehaviorProfile",
    "EventWeights",
    "ProfileStore",
    "ProfileSweeper",
]
