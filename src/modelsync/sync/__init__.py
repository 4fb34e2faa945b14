"""Connection configuration, models, retry and session state."""
