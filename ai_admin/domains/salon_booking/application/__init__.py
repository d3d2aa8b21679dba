"""Salon booking application layer: ports, services and use cases."""
