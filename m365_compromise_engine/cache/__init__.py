"""Cache package — expiring lookup cache."""

from .store import GeoCache

__all__ = ["GeoCache"]
