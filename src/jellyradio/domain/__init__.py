"""Domain layer - entities, pure matching logic, exceptions and ports."""
