from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, insert, and_, text, bindparam
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple
import logging
import uuid

from app.core.config import settings
from app.core.exceptions import GeocodingError, NotFoundError, TempoLinkException, ValidationError
from app.models.address import Address, user_addresses
from app.models.user import User
from app.services.geocoding_service import Coordinates, NominatimGeocoder

logger = logging.getLogger(__name__)

METERS_PER_MILE = 1609.34

ADDRESS_FIELDS = ("street", "unit", "city", "state", "postal_code", "country")


def _clean(parts: Dict[str, Any], key: str) -> str:
    value = parts.get(key)
    return value.strip() if isinstance(value, str) else ""


def format_address(parts: Dict[str, Any]) -> str:
    """Lower-case, comma joined: "street unit, city, state, postal code, country" """
    street = " ".join(p for p in (_clean(parts, "street"), _clean(parts, "unit")) if p)
    pieces = [street] + [_clean(parts, key) for key in ("city", "state", "postal_code", "country")]
    return ", ".join(p for p in pieces if p).lower()


def format_address_for_geocoding(parts: Dict[str, Any]) -> str:
    """Like format_address without the unit and case folding"""
    pieces = [_clean(parts, key) for key in ("street", "city", "state", "postal_code", "country")]
    return ", ".join(p for p in pieces if p)


def postal_code_key(postal_code: str) -> str:
    return f"{postal_code.strip()}, {settings.DEFAULT_COUNTRY}".lower()


class SpatialIndex(Protocol):
    """Storage of address points and radius queries over them"""

    async def store_point(self, db: AsyncSession, address_id: uuid.UUID, coordinates: Coordinates) -> None:
        ...

    async def find_users_within(
        self,
        db: AsyncSession,
        center: Coordinates,
        radius_miles: float,
        user_ids: Sequence[uuid.UUID]
    ) -> List[Tuple[uuid.UUID, float]]:
        ...


class PostgisSpatialIndex:
    """PostGIS geography column on addresses, managed with raw SQL"""

    async def store_point(self, db: AsyncSession, address_id: uuid.UUID, coordinates: Coordinates) -> None:
        await db.execute(
            text("UPDATE addresses SET location = ST_GeogFromText(:point) WHERE id = :address_id"),
            {"point": coordinates.to_wkt(), "address_id": address_id}
        )

    async def find_users_within(
        self,
        db: AsyncSession,
        center: Coordinates,
        radius_miles: float,
        user_ids: Sequence[uuid.UUID]
    ) -> List[Tuple[uuid.UUID, float]]:
        """(user_id, miles) for each linked address within the radius, nearest first"""
        if not user_ids:
            return []

        query = text(
            """
            SELECT ua.user_id,
                   ST_Distance(a.location, ST_GeogFromText(:point)) / :meters_per_mile AS distance_miles
            FROM user_addresses ua
            JOIN addresses a ON ua.address_id = a.id
            WHERE ua.user_id IN :user_ids
              AND a.location IS NOT NULL
              AND ST_Distance(a.location, ST_GeogFromText(:point)) <= :meters
            ORDER BY distance_miles ASC
            """
        ).bindparams(bindparam("user_ids", expanding=True))

        result = await db.execute(
            query,
            {
                "point": center.to_wkt(),
                "meters_per_mile": METERS_PER_MILE,
                "meters": radius_miles * METERS_PER_MILE,
                "user_ids": list(user_ids)
            }
        )
        return [(row.user_id, float(row.distance_miles)) for row in result]


class AddressService:
    """Service for saved addresses and their coordinates"""

    def __init__(
        self,
        db: AsyncSession,
        geocoder: Optional[NominatimGeocoder] = None,
        spatial_index: Optional[SpatialIndex] = None
    ):
        self.db = db
        self.geocoder = geocoder or NominatimGeocoder()
        self.spatial_index = spatial_index or PostgisSpatialIndex()

    async def _by_formatted(self, address_formatted: str) -> Optional[Address]:
        result = await self.db.execute(
            select(Address).where(Address.address_formatted == address_formatted)
        )
        return result.scalar_one_or_none()

    async def add_address(self, parts: Dict[str, Any]) -> Tuple[Address, bool]:
        """Get or create an address by its normalised form; coordinates are filled later"""
        address_formatted = format_address(parts)
        if not address_formatted:
            raise ValidationError("Address is empty")

        existing = await self._by_formatted(address_formatted)
        if existing:
            return existing, False

        address = Address(
            id=uuid.uuid4(),
            address={key: _clean(parts, key) for key in ADDRESS_FIELDS if _clean(parts, key)},
            address_formatted=address_formatted
        )

        try:
            self.db.add(address)
            await self.db.commit()
        except IntegrityError:
            # Created concurrently under the same normalised form
            await self.db.rollback()
            existing = await self._by_formatted(address_formatted)
            if existing is None:
                raise TempoLinkException("Failed to save address")
            return existing, False
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to save address {address_formatted!r}: {e}")
            raise TempoLinkException("Failed to save address")

        logger.info(f"Created address {address.id}")
        return address, True

    async def link_user_address(self, user: User, address_id: uuid.UUID) -> None:
        """Attach an address to a user; linking twice is a no-op"""
        result = await self.db.execute(select(Address.id).where(Address.id == address_id))
        if result.first() is None:
            raise NotFoundError("Address not found")

        result = await self.db.execute(
            select(user_addresses.c.user_id).where(
                and_(
                    user_addresses.c.user_id == user.id,
                    user_addresses.c.address_id == address_id
                )
            )
        )
        if result.first() is not None:
            return

        try:
            await self.db.execute(insert(user_addresses).values(user_id=user.id, address_id=address_id))
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to link address {address_id} to user {user.id}: {e}")
            raise TempoLinkException("Failed to link address")

        logger.info(f"Linked address {address_id} to user {user.id}")

    async def list_user_addresses(self, user: User) -> List[Address]:
        result = await self.db.execute(
            select(Address)
            .join(user_addresses, user_addresses.c.address_id == Address.id)
            .where(user_addresses.c.user_id == user.id)
            .order_by(Address.created_at)
        )
        return list(result.scalars().all())

    async def _store_coordinates(self, address: Address, coordinates: Coordinates) -> None:
        address.latitude = coordinates.latitude
        address.longitude = coordinates.longitude

        try:
            await self.db.flush()
            await self.spatial_index.store_point(self.db, address.id, coordinates)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to store coordinates of address {address.id}: {e}")
            raise TempoLinkException("Failed to save address coordinates")

        logger.info(f"Geocoded address {address.id} to ({coordinates.latitude}, {coordinates.longitude})")

    async def get_or_create_postal_code_address(self, postal_code: str) -> Address:
        """Cached postal-code location; geocodes only when coordinates are missing"""
        if not postal_code or not postal_code.strip():
            raise ValidationError("Postal code is required")

        address = await self._by_formatted(postal_code_key(postal_code))
        if address and address.is_geocoded:
            return address

        coordinates = await self.geocoder.geocode_postal_code(postal_code)
        if coordinates is None:
            raise GeocodingError("Failed to geocode postal code")

        if address is None:
            address, _ = await self.add_address({
                "postal_code": postal_code,
                "country": settings.DEFAULT_COUNTRY
            })

        await self._store_coordinates(address, coordinates)
        return address

    async def ensure_geocoded(self, address: Address) -> Coordinates:
        """Coordinates of a saved address, geocoding it by postal code when needed"""
        if address.is_geocoded:
            return Coordinates(latitude=address.latitude, longitude=address.longitude)

        parts = address.address or {}
        postal_code = parts.get("postal_code") or parts.get("postalCode")
        if not postal_code:
            raise ValidationError("Address is not geocoded and has no postal code")

        coordinates = await self.geocoder.geocode_postal_code(postal_code)
        if coordinates is None:
            raise GeocodingError("Failed to geocode address")

        await self._store_coordinates(address, coordinates)
        return coordinates

    async def geocode_address(self, address: Address) -> Optional[Coordinates]:
        """Geocode a saved address by its full text, then by its postal code

        Returns None when neither query matches; the address stays ungeocoded.
        """
        if address.is_geocoded:
            return Coordinates(latitude=address.latitude, longitude=address.longitude)

        parts = address.address or {}
        coordinates = await self.geocoder.geocode(format_address_for_geocoding(parts))

        # Without a street the full text is already the postal-code query
        postal_code = parts.get("postal_code")
        if coordinates is None and postal_code and parts.get("street"):
            coordinates = await self.geocoder.geocode_postal_code(postal_code)

        if coordinates is None:
            logger.warning(f"No geocoding match for address {address.id}")
            return None

        await self._store_coordinates(address, coordinates)
        return coordinates

    async def save_user_address(self, user: User, parts: Dict[str, Any]) -> Address:
        """Save an address, link it to the user and geocode it if it has no coordinates yet"""
        address, _ = await self.add_address(parts)
        await self.link_user_address(user, address.id)

        if not address.is_geocoded:
            try:
                await self.geocode_address(address)
            except GeocodingError as e:
                # The address is kept; a later save of the same address retries
                logger.warning(f"Geocoding address {address.id} failed, saved without coordinates: {e}")

        return address

    async def get_address(self, address_id: uuid.UUID) -> Address:
        result = await self.db.execute(select(Address).where(Address.id == address_id))
        address = result.scalar_one_or_none()
        if not address:
            raise NotFoundError("Address not found")
        return address
