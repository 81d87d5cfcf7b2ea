"""Catalogue provider interface."""
from abc import ABC, abstractmethod
from typing import Dict, List, Optional
from pydantic import BaseModel


class Medicine(BaseModel):
    """Medicine model."""

    id: str
    name: str
    category: Optional[str] = None
    requires_prescription: bool = False


class Pharmacy(BaseModel):
    """Pharmacy model."""

    id: str
    name: str
    address: str
    prices: Dict[str, float] = {}  # medicine_id -> unit price

    def price_of(self, medicine_id: str) -> Optional[float]:
        """Return the unit price for a medicine, or None if not stocked."""
        return self.prices.get(medicine_id)


class Catalog(BaseModel):
    """Catalogue model."""

    medicines: List[Medicine]
    pharmacies: List[Pharmacy]


class CatalogProvider(ABC):
    """Abstract base class for catalogue providers."""

    @abstractmethod
    async def get_catalog(self) -> Catalog:
        """Get the full catalogue."""
        pass

    @abstractmethod
    async def resolve_medicine(self, medicine_id: str) -> Optional[Medicine]:
        """Get a medicine by id."""
        pass

    @abstractmethod
    async def resolve_pharmacy(self, pharmacy_id: str) -> Optional[Pharmacy]:
        """Get a pharmacy by id."""
        pass
