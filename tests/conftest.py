import pytest

from circularmetal.backend.api_models import EnergyMix, EstimatedValue, InputParams
from circularmetal.backend.config import DEFAULT_ENERGY_MODEL_PATH, DEFAULT_FACTORS_PATH, DEFAULT_TREE_MODEL_PATH
from circularmetal.backend.factor_store import Factors, FactorStore
from circularmetal.backend.imputation import ImputationOrchestrator
from circularmetal.backend.lca_engine import LcaEngine
from circularmetal.backend.model_server import ModelRegistry


def make_inputs(metal="aluminium", recycled=0.0, distance=0.0, grid=1.0, recovery=0.0) -> InputParams:
    return InputParams(
        metal=metal,
        recycledContentFraction=EstimatedValue(value=recycled),
        transportDistanceKm=EstimatedValue(value=distance),
        energyMix=EnergyMix(gridFraction=EstimatedValue(value=grid)),
        endOfLifeRecoveryRate=EstimatedValue(value=recovery),
    )


@pytest.fixture(scope="session")
def factor_store() -> FactorStore:
    return FactorStore.from_file(DEFAULT_FACTORS_PATH)


@pytest.fixture(scope="session")
def registry() -> ModelRegistry:
    return ModelRegistry.from_files(DEFAULT_ENERGY_MODEL_PATH, DEFAULT_TREE_MODEL_PATH)


@pytest.fixture
def engine(factor_store) -> LcaEngine:
    return LcaEngine(factor_store)


@pytest.fixture
def orchestrator(registry, engine) -> ImputationOrchestrator:
    return ImputationOrchestrator(registry, engine)


@pytest.fixture
def synthetic_factors() -> Factors:
    return Factors(
        mining_energy_MJ=10.0,
        mining_direct_emissions_CO2e=1.0,
        processing_energy_MJ=40.0,
        EF_energy_grid_CO2e_per_MJ=0.2,
        recycling_credit_CO2e=-2.0,
        recycling_energy_MJ=5.0,
        EF_transport_CO2e_per_tkm=0.05,
        water_m3=0.5,
        reuse_potential_fraction=0.5,
        material_loss_fraction=0.1,
    )


@pytest.fixture
def scenario():
    """Builds InputParams from plain numbers: scenario(metal, recycled=..., distance=..., grid=..., recovery=...)."""
    return make_inputs
