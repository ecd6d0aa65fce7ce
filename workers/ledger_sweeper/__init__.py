"""Background sweeper for expired idempotency records."""
