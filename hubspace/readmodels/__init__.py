"""Read models derived from the change feed."""
