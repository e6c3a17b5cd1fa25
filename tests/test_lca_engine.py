"""Tests for impacts, circularity, flows and the engine that composes them."""
import math

import pytest

from circularmetal.backend.api_models import EnergyMix, EstimatedValue, InputParams
from circularmetal.backend.errors import ConfigurationError, UnknownMaterialError
from circularmetal.backend.lca_engine import (
    CIRCULARITY_POLICIES,
    FLOW_NODES,
    FOUR_TERM_POLICY,
    THREE_TERM_POLICY,
    LcaEngine,
    build_flow_graph,
    compute_circularity_index,
    compute_impacts,
    get_circularity_policy,
    round_half_up,
    serialize_result,
)

FRACTIONS = [0.0, 0.0005, 0.1, 0.25, 1 / 3, 0.5, 0.75, 0.999, 1.0]


def _links(result):
    return {(link.source, link.target): link.value for link in result.sankey.links}


# --- reference scenarios ---

def test_pure_primary_aluminium(engine, scenario):
    result = engine.calculate_lca(scenario("aluminium", recycled=0, distance=100, grid=1.0, recovery=0.8))

    assert result.summary.totalCO2e_kg == pytest.approx(21.31)
    assert result.summary.totalEnergy_MJ == pytest.approx(180)
    assert result.summary.circularityIndex == 51
    assert isinstance(result.summary.circularityIndex, int)
    assert all(link.source != 1 for link in result.sankey.links)


def test_high_recycling_copper(engine, scenario):
    result = engine.calculate_lca(scenario("copper", recycled=0.75, distance=50, grid=0.5, recovery=0.9))

    assert result.summary.totalCO2e_kg == pytest.approx(-2.1575)
    assert result.summary.totalEnergy_MJ == pytest.approx(33.75)
    assert result.summary.circularityIndex == 83
    assert result.breakdown.co2e.recyclingCredit == pytest.approx(-3.6)
    assert _links(result)[(0, 2)] == pytest.approx(0.25)


# --- impacts ---

def test_impact_breakdown_sums_to_totals(synthetic_factors, scenario):
    impacts = compute_impacts(scenario(recycled=0.3, distance=250, grid=0.6), synthetic_factors)
    co2e = impacts.breakdown.co2e
    energy = impacts.breakdown.energy

    assert impacts.total_co2e == pytest.approx(co2e.mining + co2e.processing + co2e.transport + co2e.recyclingCredit)
    assert impacts.total_energy == pytest.approx(energy.mining + energy.processing + energy.recycling)


def test_impacts_with_synthetic_factors(synthetic_factors, scenario):
    impacts = compute_impacts(scenario(recycled=0.5, distance=1000, grid=0.5), synthetic_factors)

    # mining: 0.5 * (1 + 10 * 0.2 * 0.5); processing: 0.5 * 40 * 0.2 * 0.5
    assert impacts.breakdown.co2e.mining == pytest.approx(1.0)
    assert impacts.breakdown.co2e.processing == pytest.approx(2.0)
    assert impacts.breakdown.co2e.transport == pytest.approx(0.05)
    assert impacts.breakdown.co2e.recyclingCredit == pytest.approx(-1.0)
    assert impacts.total_energy == pytest.approx(0.5 * 50 + 0.5 * 5)
    assert impacts.total_water == 0.5


def test_water_is_a_material_constant(synthetic_factors, scenario):
    low = compute_impacts(scenario(recycled=0.0, distance=0), synthetic_factors)
    high = compute_impacts(scenario(recycled=1.0, distance=5000), synthetic_factors)

    assert low.total_water == high.total_water == synthetic_factors.water_m3


def test_clean_energy_only_leaves_direct_emissions(synthetic_factors, scenario):
    impacts = compute_impacts(scenario(recycled=0.0, grid=0.0), synthetic_factors)

    assert impacts.breakdown.co2e.processing == 0
    assert impacts.breakdown.co2e.mining == pytest.approx(synthetic_factors.mining_direct_emissions_CO2e)


def test_out_of_range_inputs_are_not_rechecked(synthetic_factors):
    inputs = InputParams.model_construct(
        metal="aluminium",
        recycledContentFraction=EstimatedValue(value=1.5),
        transportDistanceKm=EstimatedValue(value=0),
        energyMix=EnergyMix(gridFraction=EstimatedValue(value=1)),
        endOfLifeRecoveryRate=EstimatedValue(value=0),
    )

    impacts = compute_impacts(inputs, synthetic_factors)

    # primary share goes negative and the arithmetic just follows
    assert impacts.breakdown.energy.mining == pytest.approx(-0.5 * synthetic_factors.mining_energy_MJ)


@pytest.mark.parametrize("metal", ["aluminium", "copper"])
def test_more_recycled_content_never_increases_co2e(engine, scenario, metal):
    totals = [
        engine.calculate_lca(scenario(metal, recycled=r / 10, distance=300, grid=0.7, recovery=0.5)).summary.totalCO2e_kg
        for r in range(11)
    ]

    assert all(later <= earlier for earlier, later in zip(totals, totals[1:]))


# --- circularity ---

def test_circularity_policy_weights_sum_to_one():
    for policy in CIRCULARITY_POLICIES.values():
        assert math.fsum(policy.weights.values()) == pytest.approx(1.0, abs=1e-12)


def test_round_half_up():
    assert round_half_up(82.5) == 83
    assert round_half_up(0.5) == 1
    assert round_half_up(51.49) == 51


@pytest.mark.parametrize("recycled", FRACTIONS)
@pytest.mark.parametrize("recovery", FRACTIONS)
def test_circularity_index_is_bounded_integer(factor_store, scenario, recycled, recovery):
    for material in factor_store.materials():
        for policy in CIRCULARITY_POLICIES.values():
            index = compute_circularity_index(
                scenario(material, recycled=recycled, recovery=recovery), factor_store.get(material), policy
            )
            assert isinstance(index, int)
            assert 0 <= index <= 100


def test_three_term_policy(synthetic_factors, scenario):
    # 0.4 * 0.5 + 0.3 * 0.5 + 0.3 * 0.5 = 0.5
    assert compute_circularity_index(scenario(recycled=0.5, recovery=0.5), synthetic_factors, THREE_TERM_POLICY) == 50


def test_four_term_policy(synthetic_factors, scenario):
    # 0.4 * 0.5 + 0.3 * 0.5 + 0.2 * 0.5 + 0.1 * (1 - 0.1) = 0.54
    assert compute_circularity_index(scenario(recycled=0.5, recovery=0.5), synthetic_factors, FOUR_TERM_POLICY) == 54


def test_engine_uses_configured_policy(factor_store, scenario):
    inputs = scenario("aluminium", recycled=0.50625, recovery=0.0)

    three = LcaEngine(factor_store, THREE_TERM_POLICY).calculate_lca(inputs)
    four = LcaEngine(factor_store, FOUR_TERM_POLICY).calculate_lca(inputs)

    # three: 0.2025 + 0.27 = 0.4725; four: 0.2025 + 0.18 + 0.095 = 0.4775
    assert three.summary.circularityIndex == 47
    assert four.summary.circularityIndex == 48


def test_unknown_policy_name():
    assert get_circularity_policy("four-term") is FOUR_TERM_POLICY
    with pytest.raises(ConfigurationError):
        get_circularity_policy("five-term")


# --- flows ---

def test_flow_graph_topology(scenario):
    graph = build_flow_graph(scenario(recycled=0.4, recovery=0.6))

    assert [node.name for node in graph.nodes] == list(FLOW_NODES)
    assert [(link.source, link.target) for link in graph.links] == [(0, 2), (1, 2), (2, 3), (3, 4), (4, 5), (4, 6)]


@pytest.mark.parametrize("recycled", FRACTIONS)
@pytest.mark.parametrize("recovery", FRACTIONS)
def test_flow_conservation(scenario, recycled, recovery):
    graph = build_flow_graph(scenario(recycled=recycled, recovery=recovery))
    into_processing = sum(link.value for link in graph.links if link.target == 2)
    out_of_eol = sum(link.value for link in graph.links if link.source == 4)

    assert into_processing <= 1.0 + 1e-12
    assert out_of_eol <= 1.0 + 1e-12
    if 0.001 < recycled < 0.999:
        assert into_processing == pytest.approx(1.0)
    if 0.001 < recovery < 0.999:
        assert out_of_eol == pytest.approx(1.0)
    assert all(0 < link.value <= 1 for link in graph.links)


def test_near_zero_flows_are_dropped(scenario):
    graph = build_flow_graph(scenario(recycled=0.001, recovery=1.0))
    pairs = [(link.source, link.target) for link in graph.links]

    assert (1, 2) not in pairs  # exactly at the threshold
    assert (4, 6) not in pairs
    assert (0, 2) in pairs


# --- engine ---

def test_unknown_metal_fails(engine, scenario):
    with pytest.raises(UnknownMaterialError):
        engine.calculate_lca(scenario("steel"))


def test_metal_name_is_normalised(engine, scenario):
    assert engine.calculate_lca(scenario("Copper")) == engine.calculate_lca(scenario("copper"))


def test_calculation_is_idempotent(engine, scenario):
    inputs = scenario("copper", recycled=0.33, distance=777, grid=0.42, recovery=0.61)

    first = engine.calculate_lca(inputs)
    second = engine.calculate_lca(inputs)

    assert first.model_dump() == second.model_dump()


def test_serialize_result_rounds(engine, scenario):
    result = engine.calculate_lca(scenario("copper", recycled=1 / 3, distance=123, grid=0.77, recovery=2 / 3))

    data = serialize_result(result)

    assert data["summary"]["totalCO2e_kg"] == round(result.summary.totalCO2e_kg, 3)
    assert isinstance(data["summary"]["circularityIndex"], float)
    assert data["sankey"]["links"][0]["value"] == 0.667
    assert data["breakdown"]["co2e"]["recyclingCredit"] == -1.6
