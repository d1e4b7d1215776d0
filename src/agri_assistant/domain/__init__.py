"""Domain layer: entities, value objects and service ports."""
