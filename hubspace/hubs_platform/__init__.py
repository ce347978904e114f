"""Platform runtime: membership change feed and its worker."""
