"""Export services."""

from .geojson import cells_to_feature_collection

__all__ = [
    "cells_to_feature_collection",
]
