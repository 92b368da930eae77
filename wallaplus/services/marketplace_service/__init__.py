"""Marketplace Service: listings, user profiles and reviews.

Components:
- store.py: MarketplaceStore (browse/filter, publish, buy, reviews)
- seed.py: Demo users and listings for local runs
- handler.py: Flask HTTP endpoints
"""

from .store import ALL, MarketplaceStore
from .seed import seed_demo_data

__all__ = ["ALL", "MarketplaceStore", "seed_demo_data"]
