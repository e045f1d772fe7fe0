"""HTTP API for the workshop portal."""
