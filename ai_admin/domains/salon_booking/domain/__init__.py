"""Salon booking domain layer: entities and value objects."""
