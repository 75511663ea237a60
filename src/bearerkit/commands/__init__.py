"""Built-in CLI commands for bearerkit (``init``, ``request``, ``auth``)."""
