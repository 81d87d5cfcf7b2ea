"""In-memory catalogue provider."""
import logging
import yaml
from pathlib import Path
from typing import Optional
from pharmfind.services.catalog.base import Catalog, CatalogProvider, Medicine, Pharmacy

logger = logging.getLogger(__name__)


class InMemoryCatalogProvider(CatalogProvider):
    """In-memory catalogue provider using YAML configuration."""

    def __init__(self, catalog_file: Optional[str] = None):
        """Initialize with optional catalogue file path."""
        if catalog_file is None:
            catalog_file = Path(__file__).parent / "data" / "catalog.yaml"
        self.catalog_file = Path(catalog_file)
        self._catalog: Optional[Catalog] = None

    async def _load_catalog(self) -> Catalog:
        """Load catalogue from YAML file."""
        if self._catalog is None:
            if not self.catalog_file.exists():
                logger.warning(
                    f"[CATALOG] {self.catalog_file} not found, using built-in catalogue"
                )
                # Default catalogue if file doesn't exist
                self._catalog = Catalog(
                    medicines=[
                        Medicine(id="1", name="Panadol Extra", category="Pain Relief"),
                        Medicine(
                            id="2",
                            name="Augmentin 1g",
                            category="Antibiotics",
                            requires_prescription=True,
                        ),
                    ],
                    pharmacies=[
                        Pharmacy(
                            id="1",
                            name="Green Valley Pharmacy",
                            address="Verdun Street, Beirut",
                            prices={"1": 8.5, "2": 45.0},
                        ),
                    ],
                )
            else:
                with open(self.catalog_file, "r") as f:
                    data = yaml.safe_load(f) or {}
                    self._catalog = Catalog(
                        medicines=[Medicine(**m) for m in data.get("medicines", [])],
                        pharmacies=[Pharmacy(**p) for p in data.get("pharmacies", [])],
                    )
                logger.info(
                    f"[CATALOG] Loaded {len(self._catalog.medicines)} medicines and "
                    f"{len(self._catalog.pharmacies)} pharmacies from {self.catalog_file}"
                )
        return self._catalog

    async def get_catalog(self) -> Catalog:
        """Get the full catalogue."""
        return await self._load_catalog()

    async def resolve_medicine(self, medicine_id: str) -> Optional[Medicine]:
        """Get a medicine by id."""
        catalog = await self._load_catalog()
        for medicine in catalog.medicines:
            if medicine.id == str(medicine_id):
                return medicine
        return None

    async def resolve_pharmacy(self, pharmacy_id: str) -> Optional[Pharmacy]:
        """Get a pharmacy by id."""
        catalog = await self._load_catalog()
        for pharmacy in catalog.pharmacies:
            if pharmacy.id == str(pharmacy_id):
                return pharmacy
        return None
