"""Declaration graph and deferred values."""
