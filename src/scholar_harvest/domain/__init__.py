"""Domain layer: entities shared by every pipeline stage."""
