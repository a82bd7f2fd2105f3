"""SQLite schema and migrations for eventdigest."""
