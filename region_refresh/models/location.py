"""
SQLAlchemy models for networks and catalog_locations.

A *network* is a card-issuing organisation (a library system, a grocery
chain).  A *catalog location* is one curated physical branch of a network
with the coordinates and monitoring radius the device should register as a
geofence.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Network(TimestampMixin, Base):
    __tablename__ = "networks"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Relationships
    locations: Mapped[list["CatalogLocation"]] = relationship(
        "CatalogLocation", back_populates="network", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Network(id={self.id}, name={self.name})>"


class CatalogLocation(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "catalog_locations"
    __table_args__ = (
        Index("ix_catalog_locations_coordinates", "latitude", "longitude"),
    )

    network_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        ForeignKey("networks.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Coordinates
    latitude: Mapped[Decimal] = mapped_column(Numeric(10, 7), nullable=False)
    longitude: Mapped[Decimal] = mapped_column(Numeric(10, 7), nullable=False)

    # Geofence radius registered on the device
    radius_meters: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default="100", default=100
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Relationships
    network: Mapped[Optional["Network"]] = relationship(
        "Network", back_populates="locations"
    )

    def __repr__(self) -> str:
        return (
            f"<CatalogLocation(id={self.id}, network={self.network_id}, "
            f"name={self.name})>"
        )
