"""
Per-material LCA factor tables.

Factors are read once from a JSON file and kept in an immutable mapping;
the engine only ever reads them.
"""
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Union

from .errors import ConfigurationError, UnknownMaterialError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Factors:
    """Static factors for one material, all per kg of final product."""
    mining_energy_MJ: float
    mining_direct_emissions_CO2e: float
    processing_energy_MJ: float
    EF_energy_grid_CO2e_per_MJ: float
    recycling_credit_CO2e: float
    recycling_energy_MJ: float
    EF_transport_CO2e_per_tkm: float
    water_m3: float
    reuse_potential_fraction: float
    material_loss_fraction: float = 0.05

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Factors":
        primary = raw["primaryProduction"]
        recycling = raw["recycling"]
        return cls(
            mining_energy_MJ=float(primary["mining_energy_MJ"]),
            mining_direct_emissions_CO2e=float(primary["mining_direct_emissions_CO2e"]),
            processing_energy_MJ=float(primary["processing_energy_MJ"]),
            EF_energy_grid_CO2e_per_MJ=float(primary["EF_energy_grid_CO2e_per_MJ"]),
            recycling_credit_CO2e=float(recycling["recycling_credit_CO2e"]),
            recycling_energy_MJ=float(recycling["recycling_energy_MJ"]),
            EF_transport_CO2e_per_tkm=float(raw["transport"]["EF_transport_CO2e_per_tkm"]),
            water_m3=float(raw["otherImpacts"]["water_m3"]),
            reuse_potential_fraction=float(raw["reusePotentialFraction"]),
            material_loss_fraction=float(raw.get("materialLossFraction", 0.05)),
        )


class FactorStore:
    """
    Read-only lookup of `Factors` by material key ("aluminium", "copper").

    Build it from a JSON file with `FactorStore.from_file(path)` or hand it a
    mapping directly (handy for synthetic factors in tests).
    """

    def __init__(self, factors: Mapping[str, Factors], version: str = "0.0"):
        self._factors = MappingProxyType({k.lower().strip(): v for k, v in factors.items()})
        self.version = version

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "FactorStore":
        path = Path(path)
        try:
            with open(path, encoding="utf-8") as fh:
                data = json.load(fh)
        except FileNotFoundError:
            raise ConfigurationError(f"LCA factor file not found: {path}")
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"LCA factor file {path} is not valid JSON: {e}")

        if not isinstance(data, dict):
            raise ConfigurationError(f"LCA factor file {path} must contain a JSON object.")

        version = str(data.get("version", "0.0"))
        factors: Dict[str, Factors] = {}
        for material, raw in data.items():
            if material == "version":
                continue
            try:
                factors[material] = Factors.from_dict(raw)
            except (KeyError, TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid factors for material '{material}' in {path}: {e!r}")

        if not factors:
            raise ConfigurationError(f"LCA factor file {path} defines no materials.")

        logger.info("Loaded LCA factors v%s for %d materials from %s", version, len(factors), path.name)
        return cls(factors, version=version)

    def get(self, material: str) -> Factors:
        """Exact lookup by normalised material key. Unknown keys are a configuration error."""
        factors = self._factors.get(material.lower().strip())
        if factors is None:
            raise UnknownMaterialError(material, self.materials())
        return factors

    def materials(self) -> List[str]:
        return sorted(self._factors.keys())

    def __contains__(self, material: object) -> bool:
        return isinstance(material, str) and material.lower().strip() in self._factors

    def __len__(self) -> int:
        return len(self._factors)
