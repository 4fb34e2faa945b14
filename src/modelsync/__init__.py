"""Real-time collaboration synchronization for multi-user data-modeling workspaces."""

__version__ = "0.1.0"
