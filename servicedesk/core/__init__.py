"""Process-wide configuration, logging and tracing."""
