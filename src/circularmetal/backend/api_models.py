from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, Dict, Any


class EstimatedValue(BaseModel):
    """A numeric input plus provenance. The flags never enter the arithmetic."""
    model_config = ConfigDict(frozen=True)

    value: float = Field(..., allow_inf_nan=False)
    isEstimated: bool = False
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)


class EnergyMix(BaseModel):
    model_config = ConfigDict(frozen=True)

    gridFraction: EstimatedValue


class InputParams(BaseModel):
    """One scenario, as sent to the /api/lca endpoint."""
    model_config = ConfigDict(frozen=True)

    metal: str = Field(..., examples=["aluminium"])
    recycledContentFraction: EstimatedValue
    transportDistanceKm: EstimatedValue
    energyMix: EnergyMix
    endOfLifeRecoveryRate: EstimatedValue

    @field_validator("metal")
    @classmethod
    def _normalise_metal(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("recycledContentFraction", "endOfLifeRecoveryRate")
    @classmethod
    def _fraction(cls, v: EstimatedValue) -> EstimatedValue:
        if not 0.0 <= v.value <= 1.0:
            raise ValueError("must be a fraction between 0 and 1")
        return v

    @field_validator("energyMix")
    @classmethod
    def _grid_fraction(cls, v: EnergyMix) -> EnergyMix:
        if not 0.0 <= v.gridFraction.value <= 1.0:
            raise ValueError("gridFraction must be a fraction between 0 and 1")
        return v

    @field_validator("transportDistanceKm")
    @classmethod
    def _distance(cls, v: EstimatedValue) -> EstimatedValue:
        if v.value < 0:
            raise ValueError("transport distance cannot be negative")
        return v


class Co2eBreakdown(BaseModel):
    mining: float
    processing: float
    transport: float
    recyclingCredit: float


class EnergyBreakdown(BaseModel):
    mining: float
    processing: float
    recycling: float


class Breakdown(BaseModel):
    co2e: Co2eBreakdown
    energy: EnergyBreakdown


class SankeyNode(BaseModel):
    name: str


class SankeyLink(BaseModel):
    """Represents a single flow in the Sankey diagram (indices into the node list)."""
    source: int
    target: int
    value: float


class FlowGraph(BaseModel):
    nodes: List[SankeyNode]
    links: List[SankeyLink]


class Summary(BaseModel):
    totalCO2e_kg: float
    totalEnergy_MJ: float
    totalWater_m3: float
    circularityIndex: int


class LcaResult(BaseModel):
    """Defines the structure of the JSON response from the /api/lca endpoint."""
    summary: Summary
    breakdown: Breakdown
    sankey: FlowGraph


class ImputationRecord(BaseModel):
    field: str
    method: str
    confidence: float
    source: str


class ImputeRequest(BaseModel):
    project: Dict[str, Any] = Field(..., examples=[{
        "material": "Aluminium", "product_type": "Beverage Can", "region": "EU",
        "recycledContent": 40, "transportDistance": 500, "end_of_life_recycling_rate": None,
    }])


class ImputeResponse(BaseModel):
    project_imputed: Dict[str, Any]
    imputation_meta: List[ImputationRecord]


class ProjectedSavings(BaseModel):
    co2e_percent_reduction: float


class Recommendation(BaseModel):
    id: str
    title: str
    description: str
    projectedSavings: ProjectedSavings


class SavedProject(BaseModel):
    inputs: Optional[Dict[str, Any]] = None
    outputs: Optional[Dict[str, Any]] = None


class CompareRequest(BaseModel):
    projectA: SavedProject
    projectB: SavedProject


class CompareDeltas(BaseModel):
    gwp_difference: float
    gwp_delta_percent: Optional[float]
    circularity_score_difference: float


class CompareResponse(BaseModel):
    left_metrics: Dict[str, Any]
    right_metrics: Dict[str, Any]
    deltas: CompareDeltas
