"""Record source (PostgreSQL)."""
