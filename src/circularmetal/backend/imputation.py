"""
Fills gaps in a custom project before running the LCA.

Project fields use the dashboard's naming (`recycledContent` in percent,
`end_of_life_recycling_rate` as a 0-1 fraction, ...). Imputed values are
reported in `imputation_meta`; values that could not be imputed stay unset
and the LCA step falls back to its defaults.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .api_models import EnergyMix, EstimatedValue, ImputationRecord, InputParams
from .errors import ValidationError
from .lca_engine import LcaEngine, serialize_result
from .model_server import ModelRegistry

logger = logging.getLogger(__name__)

ENERGY_FIELD = "energy_kWh_per_kg"
RECYCLING_RATE_FIELD = "end_of_life_recycling_rate"
TREE_INPUTS = ("material", "product_type", "region")

LINEAR_REGRESSION_CONFIDENCE = 0.85
DECISION_TREE_CONFIDENCE = 0.75

# Values used by the LCA step when a field is neither supplied nor imputed
PROJECT_DEFAULTS = {
    "recycledContent": 0.0,
    "transportDistance": 0.0,
    "gridFraction": 1.0,
    RECYCLING_RATE_FIELD: 0.0,
}


@dataclass
class ImputationOutcome:
    project_imputed: Dict[str, Any]
    imputation_meta: List[ImputationRecord] = field(default_factory=list)


def _missing(project: Dict[str, Any], key: str) -> bool:
    value = project.get(key)
    return value is None or (isinstance(value, str) and not value.strip())


def _as_number(project: Dict[str, Any], key: str, errors: List[str]) -> Optional[float]:
    value = project.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        errors.append(key)
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        errors.append(key)
        return None
    if not math.isfinite(number):
        errors.append(key)
        return None
    return number


def project_to_inputs(
    project: Dict[str, Any],
    imputation_meta: List[ImputationRecord],
    default_material: str = "aluminium",
) -> InputParams:
    """
    Maps a (completed) project onto `InputParams`.

    Raises ValidationError listing every field that is non-numeric or out of range.
    """
    confidences = {record.field: record.confidence for record in imputation_meta}
    errors: List[str] = []
    defaulted: List[str] = []

    def estimated(key: str, value: Optional[float], scale: float = 1.0) -> EstimatedValue:
        if value is None:
            defaulted.append(key)
            return EstimatedValue(value=PROJECT_DEFAULTS[key] / scale, isEstimated=True)
        if key in confidences:
            return EstimatedValue(value=value / scale, isEstimated=True, confidence=confidences[key])
        return EstimatedValue(value=value / scale)

    recycled = _as_number(project, "recycledContent", errors)
    distance = _as_number(project, "transportDistance", errors)
    grid = _as_number(project, "gridFraction", errors)
    recovery = _as_number(project, RECYCLING_RATE_FIELD, errors)

    if recycled is not None and not 0 <= recycled <= 100:
        errors.append("recycledContent")
    if distance is not None and distance < 0:
        errors.append("transportDistance")
    if grid is not None and not 0 <= grid <= 1:
        errors.append("gridFraction")
    if recovery is not None and not 0 <= recovery <= 1:
        errors.append(RECYCLING_RATE_FIELD)

    if errors:
        raise ValidationError(f"Invalid project parameters: {', '.join(errors)}", fields=errors)

    if _missing(project, "material"):
        defaulted.append("material")
        metal = default_material
    else:
        metal = str(project["material"])

    params = InputParams(
        metal=metal,
        recycledContentFraction=estimated("recycledContent", recycled, scale=100.0),
        transportDistanceKm=estimated("transportDistance", distance),
        energyMix=EnergyMix(gridFraction=estimated("gridFraction", grid)),
        endOfLifeRecoveryRate=estimated(RECYCLING_RATE_FIELD, recovery),
    )
    if defaulted:
        logger.warning("Using default values for %s", ", ".join(defaulted))
    return params


class ImputationOrchestrator:
    """
    Decides which project fields are missing, imputes them and runs the LCA.

    Usage::

        orchestrator = ImputationOrchestrator(registry, engine)
        outcome = orchestrator.impute({"material": "Aluminium", ...})
    """

    def __init__(self, registry: ModelRegistry, engine: LcaEngine, default_material: str = "aluminium"):
        self.registry = registry
        self.engine = engine
        self.default_material = default_material

    def impute(self, project: Dict[str, Any], require_complete: bool = False) -> ImputationOutcome:
        """
        With `require_complete`, a recycling rate that cannot be imputed because
        material/product_type/region are missing raises ValidationError instead
        of falling back to the default.
        """
        project_imputed = dict(project)
        meta: List[ImputationRecord] = []

        # 1. Energy intensity from recycled content
        if _missing(project_imputed, ENERGY_FIELD) and not _missing(project_imputed, "recycledContent"):
            errors: List[str] = []
            recycled = _as_number(project_imputed, "recycledContent", errors)
            if errors:
                raise ValidationError("recycledContent must be a number (percent).", fields=errors)
            material = None if _missing(project_imputed, "material") else str(project_imputed["material"])
            energy = self.registry.predict_energy(recycled, material)
            project_imputed[ENERGY_FIELD] = energy
            meta.append(ImputationRecord(
                field=ENERGY_FIELD,
                method="linear-regression",
                confidence=LINEAR_REGRESSION_CONFIDENCE,
                source=self.registry.energy_source,
            ))
            logger.info("Imputed %s = %.3f from recycledContent=%s", ENERGY_FIELD, energy, recycled)

        # 2. End-of-life recycling rate from the decision tree
        if _missing(project_imputed, RECYCLING_RATE_FIELD):
            absent = [key for key in TREE_INPUTS if _missing(project_imputed, key)]
            if absent:
                if require_complete:
                    raise ValidationError(
                        f"Cannot impute {RECYCLING_RATE_FIELD}: missing {', '.join(absent)}", fields=absent
                    )
                logger.info("Skipping %s imputation, missing %s", RECYCLING_RATE_FIELD, ", ".join(absent))
            else:
                rate = self.registry.predict_recycling_rate(
                    str(project_imputed["material"]),
                    str(project_imputed["product_type"]),
                    str(project_imputed["region"]),
                )
                if rate is None:
                    logger.warning("Decision tree could not predict %s; leaving it unset.", RECYCLING_RATE_FIELD)
                else:
                    project_imputed[RECYCLING_RATE_FIELD] = rate
                    meta.append(ImputationRecord(
                        field=RECYCLING_RATE_FIELD,
                        method="decision-tree",
                        confidence=DECISION_TREE_CONFIDENCE,
                        source=self.registry.tree_source,
                    ))
                    logger.info("Imputed %s = %.3f", RECYCLING_RATE_FIELD, rate)

        # 3. LCA on the completed project
        inputs = project_to_inputs(project_imputed, meta, self.default_material)
        project_imputed["inputs"] = inputs.model_dump()
        project_imputed["results"] = serialize_result(self.engine.calculate_lca(inputs))

        return ImputationOutcome(project_imputed=project_imputed, imputation_meta=meta)
