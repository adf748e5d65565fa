"""Built-in CLI commands: ``send``, ``env`` and ``extensions``."""
