"""API client for the deals backend."""
from .deals import DealsClient, DealsAPIError, load_deals_file

__all__ = ["DealsClient", "DealsAPIError", "load_deals_file"]
