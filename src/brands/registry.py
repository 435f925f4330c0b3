"""Brand registry loaded from YAML.

The bundled ``brands.yaml`` ships with the package; deployments can point
``connector.brands_file`` at their own file.
"""

import logging
from pathlib import Path
from typing import Iterable

import yaml
from pydantic import ValidationError as PydanticValidationError

from src.brands.models import BrandConfig
from src.errors.domain import BrandConfigError, UnknownBrandError

logger = logging.getLogger(__name__)

DEFAULT_BRANDS_FILE = Path(__file__).parent / "brands.yaml"


class BrandRegistry:
    """Immutable lookup of brand configs by id and by display name."""

    def __init__(
        self,
        brands: Iterable[BrandConfig],
        hidden: Iterable[str] = (),
    ) -> None:
        """Index brands.

        Args:
            brands: Brand configs; ids must be unique.
            hidden: Brand ids omitted from ``visible()`` (still connectable
                by id).

        Raises:
            BrandConfigError: On duplicate brand ids.
        """
        self._by_id: dict[str, BrandConfig] = {}
        for brand in brands:
            if brand.brand_id in self._by_id:
                raise BrandConfigError(f"Duplicate brand_id '{brand.brand_id}'")
            self._by_id[brand.brand_id] = brand
        self._hidden = frozenset(hidden)

    def get(self, brand_id: str) -> BrandConfig:
        """Return the brand config for an id.

        Raises:
            UnknownBrandError: If the brand id is unknown.
        """
        brand = self._by_id.get(brand_id)
        if brand is None:
            raise UnknownBrandError(brand_id)
        return brand

    def all(self) -> list[BrandConfig]:
        return list(self._by_id.values())

    def visible(self) -> list[BrandConfig]:
        return [b for b in self._by_id.values() if b.brand_id not in self._hidden]

    def __contains__(self, brand_id: object) -> bool:
        return brand_id in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)


def load_brands(
    path: str | Path | None = None,
    hidden: Iterable[str] = (),
) -> BrandRegistry:
    """Load brand configs from a YAML file.

    The file holds a top-level ``brands`` list; each entry follows
    BrandConfig (camelCase ``dataTransform``/``schema`` keys accepted).

    Args:
        path: YAML file; defaults to the bundled brands.yaml.
        hidden: Brand ids to hide from listings.

    Returns:
        Populated BrandRegistry.

    Raises:
        FileNotFoundError: If an explicit path does not exist.
        BrandConfigError: If an entry does not validate.
    """
    brands_path = Path(path) if path else DEFAULT_BRANDS_FILE
    if not brands_path.exists():
        raise FileNotFoundError(f"Brands file not found: {brands_path}")

    with open(brands_path) as f:
        raw = yaml.safe_load(f) or {}

    entries = raw.get("brands", []) if isinstance(raw, dict) else []
    brands: list[BrandConfig] = []
    for index, entry in enumerate(entries):
        try:
            brands.append(BrandConfig.model_validate(entry))
        except PydanticValidationError as e:
            raise BrandConfigError(
                f"Invalid brand entry #{index} in {brands_path}: {e}"
            ) from e

    logger.info("Loaded %d brand configs from %s", len(brands), brands_path)
    return BrandRegistry(brands, hidden=hidden)
