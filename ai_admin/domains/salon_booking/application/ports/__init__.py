# ============================================================================
# SCOPE: APPLICATION LAYER (Salon Booking)
# Description: Ports (interfaces) for external systems.
# ============================================================================
"""Salon Booking Application Ports.

- IBookingGateway: slots and booking mutations
- ICatalogLoader: company, catalog and client card
- IDialogContextStore: durable dialog state
- ISharedContextCache: shared full-context cache
- IBookingOwnershipStore: phone to booking bookkeeping
- IResponseGenerator: upstream AI text generation
"""

from .booking_port import IBookingGateway
from .catalog_port import ICatalogLoader
from .context_store_port import IDialogContextStore, ISharedContextCache
from .ownership_port import IBookingOwnershipStore
from .response_generator_port import IResponseGenerator

__all__ = [
    "IBookingGateway",
    "ICatalogLoader",
    "IDialogContextStore",
    "ISharedContextCache",
    "IBookingOwnershipStore",
    "IResponseGenerator",
]
