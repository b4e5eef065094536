from .base import BaseClient
from .identity_client import IdentityClient
from .inventory_client import InventoryClient
from .order_client import OrderClient
from .upc_client import UpcClient

__all__ = ["BaseClient", "IdentityClient", "InventoryClient", "OrderClient", "UpcClient"]
