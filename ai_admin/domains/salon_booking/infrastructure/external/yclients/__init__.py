"""YClients CRM integration."""

from .client import YClientsClient

__all__ = ["YClientsClient"]
