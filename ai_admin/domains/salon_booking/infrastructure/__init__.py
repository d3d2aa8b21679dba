"""Salon booking infrastructure: persistence, caches and external systems."""
