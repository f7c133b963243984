"""Process-wide infrastructure (database)."""
