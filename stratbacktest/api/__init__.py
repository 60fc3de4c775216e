"""HTTP API for stratbacktest."""
