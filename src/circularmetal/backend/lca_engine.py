import logging
import math
from dataclasses import dataclass
from typing import Dict, Any, List, Optional

from .api_models import (
    Breakdown,
    Co2eBreakdown,
    EnergyBreakdown,
    FlowGraph,
    InputParams,
    LcaResult,
    ProjectedSavings,
    Recommendation,
    SankeyLink,
    SankeyNode,
    Summary,
)
from .errors import ConfigurationError, ValidationError
from .factor_store import Factors, FactorStore

logger = logging.getLogger(__name__)

# 1 kg of product expressed in tonnes, for the tonne-km transport factor
KG_IN_TONNES = 0.001

# Links at or below this value are not drawn
MIN_VISIBLE_FLOW = 0.001

FLOW_NODES = (
    "Virgin Material",
    "Recycled Scrap",
    "Processing",
    "Final Product",
    "End of Life",
    "Recovered",
    "Landfilled",
)


@dataclass(frozen=True)
class Impacts:
    total_co2e: float
    total_energy: float
    total_water: float
    breakdown: Breakdown


@dataclass(frozen=True)
class CircularityPolicy:
    """
    Weights of the circularity index. Each policy's weights sum to 1.0.

    `material_retention` weighs (1 - material loss); it is zero for the
    three-term policy.
    """
    name: str
    recycled_content: float
    reuse_potential: float
    eol_recovery: float
    material_retention: float = 0.0

    @property
    def weights(self) -> Dict[str, float]:
        return {
            "recycled_content": self.recycled_content,
            "reuse_potential": self.reuse_potential,
            "eol_recovery": self.eol_recovery,
            "material_retention": self.material_retention,
        }


THREE_TERM_POLICY = CircularityPolicy("three-term", recycled_content=0.4, reuse_potential=0.3, eol_recovery=0.3)
FOUR_TERM_POLICY = CircularityPolicy(
    "four-term", recycled_content=0.4, reuse_potential=0.2, eol_recovery=0.3, material_retention=0.1
)
CIRCULARITY_POLICIES = {p.name: p for p in (THREE_TERM_POLICY, FOUR_TERM_POLICY)}


def get_circularity_policy(name: str) -> CircularityPolicy:
    try:
        return CIRCULARITY_POLICIES[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown circularity policy '{name}'. Valid policies: {', '.join(sorted(CIRCULARITY_POLICIES))}"
        )


def round_half_up(x: float) -> int:
    """Rounds .5 away from zero for positive values, like Math.round on the dashboard."""
    return int(math.floor(x + 0.5))


# --- IMPACTS (CO2e, energy, water per kg of product) ---

def compute_impacts(inputs: InputParams, factors: Factors) -> Impacts:
    """
    Turns one scenario into CO2e, energy and water figures per kg of metal.

    Inputs are trusted: range checks belong to whoever builds `InputParams`.
    """
    recycled = inputs.recycledContentFraction.value
    grid = inputs.energyMix.gridFraction.value
    primary_share = 1 - recycled

    grid_ef = factors.EF_energy_grid_CO2e_per_MJ

    co2e_mining = primary_share * (
        factors.mining_direct_emissions_CO2e + factors.mining_energy_MJ * grid_ef * grid
    )
    co2e_processing = primary_share * factors.processing_energy_MJ * grid_ef * grid
    co2e_transport = inputs.transportDistanceKm.value * KG_IN_TONNES * factors.EF_transport_CO2e_per_tkm
    co2e_recycling_credit = recycled * factors.recycling_credit_CO2e

    total_co2e = co2e_mining + co2e_processing + co2e_transport + co2e_recycling_credit

    energy_mining = primary_share * factors.mining_energy_MJ
    energy_processing = primary_share * factors.processing_energy_MJ
    energy_recycling = recycled * factors.recycling_energy_MJ

    return Impacts(
        total_co2e=total_co2e,
        total_energy=energy_mining + energy_processing + energy_recycling,
        total_water=factors.water_m3,
        breakdown=Breakdown(
            co2e=Co2eBreakdown(
                mining=co2e_mining,
                processing=co2e_processing,
                transport=co2e_transport,
                recyclingCredit=co2e_recycling_credit,
            ),
            energy=EnergyBreakdown(
                mining=energy_mining,
                processing=energy_processing,
                recycling=energy_recycling,
            ),
        ),
    )


# --- CIRCULARITY INDEX (0-100) ---

def compute_circularity_index(
    inputs: InputParams, factors: Factors, policy: CircularityPolicy = THREE_TERM_POLICY
) -> int:
    weighted = (
        policy.recycled_content * inputs.recycledContentFraction.value
        + policy.reuse_potential * factors.reuse_potential_fraction
        + policy.eol_recovery * inputs.endOfLifeRecoveryRate.value
        + policy.material_retention * (1 - factors.material_loss_fraction)
    )
    return min(100, max(0, round_half_up(100 * weighted)))


# --- SANKEY FLOWS ---

def build_flow_graph(inputs: InputParams) -> FlowGraph:
    """Material flow fractions: virgin/recycled -> processing -> product -> end of life."""
    recycled = inputs.recycledContentFraction.value
    recovered = inputs.endOfLifeRecoveryRate.value

    links = [
        SankeyLink(source=0, target=2, value=1 - recycled),
        SankeyLink(source=1, target=2, value=recycled),
        SankeyLink(source=2, target=3, value=1.0),
        SankeyLink(source=3, target=4, value=1.0),
        SankeyLink(source=4, target=5, value=recovered),
        SankeyLink(source=4, target=6, value=1 - recovered),
    ]
    return FlowGraph(
        nodes=[SankeyNode(name=name) for name in FLOW_NODES],
        links=[link for link in links if link.value > MIN_VISIBLE_FLOW],
    )


class LcaEngine:
    """
    Composes impacts, circularity and flows into one `LcaResult`.

    Usage::

        engine = LcaEngine(FactorStore.from_file(path))
        result = engine.calculate_lca(inputs)
    """

    def __init__(self, factor_store: FactorStore, circularity_policy: CircularityPolicy = THREE_TERM_POLICY):
        self.factor_store = factor_store
        self.circularity_policy = circularity_policy

    def calculate_lca(self, inputs: InputParams) -> LcaResult:
        factors = self.factor_store.get(inputs.metal)
        impacts = compute_impacts(inputs, factors)
        circularity_index = compute_circularity_index(inputs, factors, self.circularity_policy)

        return LcaResult(
            summary=Summary(
                totalCO2e_kg=impacts.total_co2e,
                totalEnergy_MJ=impacts.total_energy,
                totalWater_m3=impacts.total_water,
                circularityIndex=circularity_index,
            ),
            breakdown=impacts.breakdown,
            sankey=build_flow_graph(inputs),
        )


def serialize_result(result: LcaResult) -> Dict[str, Any]:
    """Rounds impact figures to 3 decimals and the circularity score to 1, for JSON output."""
    data = result.model_dump()
    summary = data["summary"]
    for key in ("totalCO2e_kg", "totalEnergy_MJ", "totalWater_m3"):
        summary[key] = round(summary[key], 3)
    summary["circularityIndex"] = round(float(summary["circularityIndex"]), 1)
    for stage in data["breakdown"].values():
        for key, value in stage.items():
            stage[key] = round(value, 3)
    for link in data["sankey"]["links"]:
        link["value"] = round(link["value"], 3)
    return data


# --- RECOMMENDATIONS ---

def _with_values(inputs: InputParams, recycled: Optional[float] = None, grid: Optional[float] = None,
                 recovery: Optional[float] = None) -> InputParams:
    update: Dict[str, Any] = {}
    if recycled is not None:
        update["recycledContentFraction"] = inputs.recycledContentFraction.model_copy(update={"value": recycled})
    if grid is not None:
        grid_value = inputs.energyMix.gridFraction.model_copy(update={"value": grid})
        update["energyMix"] = inputs.energyMix.model_copy(update={"gridFraction": grid_value})
    if recovery is not None:
        update["endOfLifeRecoveryRate"] = inputs.endOfLifeRecoveryRate.model_copy(update={"value": recovery})
    return inputs.model_copy(update=update)


def _percent_reduction(base: float, improved: float) -> float:
    if base == 0:
        return 0.0
    return round((base - improved) / abs(base) * 100, 1)


def generate_recommendations(inputs: InputParams, engine: LcaEngine) -> List[Recommendation]:
    """Re-runs the scenario with one lever moved at a time and reports the CO2e saving."""
    base = engine.calculate_lca(inputs).summary.totalCO2e_kg

    recycled = min(1.0, inputs.recycledContentFraction.value + 0.2)
    grid = max(0.0, inputs.energyMix.gridFraction.value - 0.2)
    recovery = min(1.0, inputs.endOfLifeRecoveryRate.value + 0.1)

    levers = [
        ("increase-recycling", "Increase recycled content",
         f"Raise recycled input to {recycled:.0%} by sourcing secondary (recycled) feedstock.",
         _with_values(inputs, recycled=recycled)),
        ("improve-energy-mix", "Shift to cleaner energy",
         f"Cut the grid share of production energy to {grid:.0%} with renewable supply.",
         _with_values(inputs, grid=grid)),
        ("enhance-recovery", "Enhance end-of-life recovery",
         f"Improve collection systems to recover {recovery:.0%} of products at end of life.",
         _with_values(inputs, recovery=recovery)),
    ]

    recommendations = []
    for rec_id, title, description, scenario in levers:
        improved = engine.calculate_lca(scenario).summary.totalCO2e_kg
        recommendations.append(Recommendation(
            id=rec_id,
            title=title,
            description=description,
            projectedSavings=ProjectedSavings(co2e_percent_reduction=_percent_reduction(base, improved)),
        ))
    return recommendations


# --- SCENARIO COMPARISON ---

def _summary_metrics(outputs: Optional[Dict[str, Any]], label: str) -> Dict[str, Any]:
    if not outputs:
        raise ValidationError(f"{label} must include its calculated outputs.", fields=[f"{label}.outputs"])
    summary = outputs.get("summary", outputs)
    missing = [k for k in ("totalCO2e_kg", "circularityIndex") if summary.get(k) is None]
    if missing:
        raise ValidationError(
            f"{label} outputs are missing {', '.join(missing)}.",
            fields=[f"{label}.outputs.{k}" for k in missing],
        )

    metrics = dict(summary)
    invalid = []
    for k in ("totalCO2e_kg", "circularityIndex"):
        try:
            metrics[k] = float(summary[k])
        except (TypeError, ValueError):
            invalid.append(k)
            continue
        if not math.isfinite(metrics[k]) or isinstance(summary[k], bool):
            invalid.append(k)
    if invalid:
        raise ValidationError(
            f"{label} outputs have non-numeric {', '.join(invalid)}.",
            fields=[f"{label}.outputs.{k}" for k in invalid],
        )
    return metrics


def compare_results(left: Optional[Dict[str, Any]], right: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Deltas from the left (baseline) project to the right one."""
    left_metrics = _summary_metrics(left, "projectA")
    right_metrics = _summary_metrics(right, "projectB")

    left_gwp = left_metrics["totalCO2e_kg"]
    gwp_difference = right_metrics["totalCO2e_kg"] - left_gwp
    circularity_difference = right_metrics["circularityIndex"] - left_metrics["circularityIndex"]

    return {
        "left_metrics": left_metrics,
        "right_metrics": right_metrics,
        "deltas": {
            "gwp_difference": round(gwp_difference, 3),
            "gwp_delta_percent": round(gwp_difference / abs(left_gwp) * 100, 1) if left_gwp else None,
            "circularity_score_difference": round(circularity_difference, 1),
        },
    }
