"""
Deals API Client

Fetches the raw deal list consumed by the metrics engine.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import requests

from config.settings import settings

logger = logging.getLogger(__name__)


class DealsClient:
    """
    Client for the deals backend.

    Single GET of the full deal list; no pagination, no retries.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[int] = None):
        """
        Initialize the deals client.

        Args:
            base_url: API base URL (defaults to settings)
            timeout: Request timeout in seconds (defaults to settings)
        """
        self.base_url = (base_url or settings.deals_api_url).rstrip("/")
        self.endpoint = f"{self.base_url}/api/items"
        self.timeout = timeout or settings.api_timeout

    def fetch_all(self) -> List[Dict[str, Any]]:
        """
        Fetch every deal record.

        Returns:
            List of raw deal dictionaries

        Raises:
            DealsAPIError: If the request fails or the payload is not a list
        """
        logger.info(f"Fetching deals from {self.endpoint}")

        try:
            response = requests.get(self.endpoint, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as e:
            raise DealsAPIError(f"Failed to fetch deals: {e}")
        except ValueError as e:
            raise DealsAPIError(f"Deals API returned invalid JSON: {e}")

        if not isinstance(payload, list):
            raise DealsAPIError(
                f"Deals API returned {type(payload).__name__}, expected a list of deals"
            )

        logger.info(f"Retrieved {len(payload)} deal(s)")
        return payload


def load_deals_file(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """
    Load a deal list from a JSON file.

    Args:
        path: Path to a JSON file containing a list of deals

    Returns:
        List of raw deal dictionaries

    Raises:
        DealsAPIError: If the file cannot be read or does not hold a list
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            payload = json.load(f)
    except (OSError, ValueError) as e:
        raise DealsAPIError(f"Failed to load deals from {path}: {e}")

    if not isinstance(payload, list):
        raise DealsAPIError(f"{path} holds {type(payload).__name__}, expected a list of deals")

    return payload


class DealsAPIError(Exception):
    """Raised when the deal list cannot be retrieved."""
    pass
