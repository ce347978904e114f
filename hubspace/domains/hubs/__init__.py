"""Hub aggregate: read access for joins and the member-count capability."""
