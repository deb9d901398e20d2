"""
Region Refresh SQLAlchemy Models
================================

Central import point for all ORM models. Import ``Base`` from here for
``create_all`` in tests and in the catalog import script.

Usage::

    from region_refresh.models import Base, CatalogLocation, Network
"""

# -- Base & Mixins --
from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin

# -- Location catalog --
from .location import CatalogLocation, Network

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "CatalogLocation",
    "Network",
]
