"""Core engine, data and research packages."""
