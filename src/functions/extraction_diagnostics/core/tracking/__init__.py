"""Per-task session tracking: stage checkpoints and method attempts."""

from .checkpoint_store import CheckpointStore
from .method_attempts import MethodAttemptTracker
from .session_tracker import SessionTracker

__all__ = ["CheckpointStore", "MethodAttemptTracker", "SessionTracker"]
