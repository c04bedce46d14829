# homematch/models.py
"""SQLAlchemy declarations of the tables the service reads and writes through PostgREST.

Used to bootstrap a local/dev Postgres (``POSTGRES_URL``); runtime access goes
over HTTP. ``properties.zpid`` is the upsert key for ingestion.
"""
import uuid

from sqlalchemy import (
    Boolean, CheckConstraint, Column, ForeignKey, Index, Integer, Numeric, Text,
    TIMESTAMP, func,
)
from sqlalchemy.dialects.postgresql import ARRAY, UUID
from .db import Base


class Household(Base):
    __tablename__ = "households"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(Text)
    user_count = Column(Integer, nullable=False, server_default="0")
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())


class UserProfile(Base):
    __tablename__ = "user_profiles"
    id = Column(UUID(as_uuid=True), primary_key=True)
    email = Column(Text)
    display_name = Column(Text)
    household_id = Column(UUID(as_uuid=True), ForeignKey("households.id", ondelete="SET NULL"), index=True)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())


class Property(Base):
    __tablename__ = "properties"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    zpid = Column(Text, unique=True, index=True)
    address = Column(Text, nullable=False)
    city = Column(Text, nullable=False)
    state = Column(Text, nullable=False)
    zip_code = Column(Text, nullable=False)
    price = Column(Numeric, nullable=False)
    bedrooms = Column(Numeric, nullable=False, server_default="0")
    bathrooms = Column(Numeric, nullable=False, server_default="0")
    square_feet = Column(Integer)
    lot_size_sqft = Column(Integer)
    year_built = Column(Integer)
    property_type = Column(Text)
    listing_status = Column(Text, nullable=False, server_default="active")
    images = Column(ARRAY(Text))
    description = Column(Text)
    amenities = Column(ARRAY(Text))
    neighborhood_id = Column(UUID(as_uuid=True), index=True)
    latitude = Column(Numeric)
    longitude = Column(Numeric)
    is_active = Column(Boolean, nullable=False, server_default="true")
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            "property_type IS NULL OR property_type IN "
            "('single_family','condo','townhome','multi_family','manufactured','land','other')",
            name="properties_property_type_check",
        ),
        CheckConstraint("listing_status IN ('active','pending','sold')",
                        name="properties_listing_status_check"),
    )


class UserPropertyInteraction(Base):
    __tablename__ = "user_property_interactions"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("user_profiles.id", ondelete="CASCADE"), nullable=False)
    property_id = Column(UUID(as_uuid=True), ForeignKey("properties.id", ondelete="CASCADE"), nullable=False)
    household_id = Column(UUID(as_uuid=True), ForeignKey("households.id", ondelete="SET NULL"))
    interaction_type = Column(Text, nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("interaction_type IN ('like','dislike','skip','view')",
                        name="user_property_interactions_type_check"),
    )


class PropertyVibes(Base):
    __tablename__ = "property_vibes"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    property_id = Column(UUID(as_uuid=True), ForeignKey("properties.id", ondelete="CASCADE"),
                         nullable=False, unique=True)
    tagline = Column(Text)
    vibe_statement = Column(Text)
    primary_vibes = Column(ARRAY(Text))
    tags = Column(ARRAY(Text))
    source_data_hash = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())


Index("idx_properties_price", Property.price)
Index("idx_properties_city_state", Property.city, Property.state)
Index("idx_interactions_household_type", UserPropertyInteraction.household_id,
      UserPropertyInteraction.interaction_type)
Index("idx_interactions_user_created", UserPropertyInteraction.user_id,
      UserPropertyInteraction.created_at)
