"""Domain layer: entities, interfaces and pure services."""
