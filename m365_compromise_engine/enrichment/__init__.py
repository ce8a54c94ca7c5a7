"""Enrichment package — IP geolocation for sign-in records."""

from .geo import GeoLocator, GeoResult, GeoLookupError, enrich_sign_ins

__all__ = ["GeoLocator", "GeoResult", "GeoLookupError", "enrich_sign_ins"]
