"""Memberships domain: join/leave handlers, store and stale-membership cleanup."""
