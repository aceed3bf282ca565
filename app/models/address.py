from sqlalchemy import Column, String, Float, JSON, ForeignKey, Table, Uuid

from app.core.database import Base


user_addresses = Table(
    "user_addresses",
    Base.metadata,
    Column("user_id", Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("address_id", Uuid, ForeignKey("addresses.id", ondelete="CASCADE"), primary_key=True),
)


class Address(Base):
    __tablename__ = "addresses"

    # Structured parts: street, unit, city, state, postal_code, country
    address = Column(JSON, nullable=False)
    address_formatted = Column(String, unique=True, index=True, nullable=False)  # Lower-case, comma joined

    # Coordinates are filled lazily on first geocode
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    # The PostGIS "location" geography column is managed with raw SQL only

    @property
    def is_geocoded(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def __repr__(self):
        return f"<Address(address_formatted={self.address_formatted})>"
