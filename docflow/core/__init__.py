"""Process-wide infrastructure: logging, error tracking, database, resilience."""
