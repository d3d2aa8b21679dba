"""Salon booking persistence adapters."""
