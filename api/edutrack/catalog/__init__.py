"""Read-only view of the course catalog: modules, topics and lessons."""
