from DefectClusterTools.handlers import BurstingHandler
from DefectClusterTools.reactants import (Cluster, ReactionNetwork,
                                          get_simple_reaction_network)

import numpy as np
import pytest


@pytest.fixture
def network():
    network = get_simple_reaction_network()
    network.set_temperature(1000.0)
    return network


@pytest.fixture
def concs(network):
    rng = np.random.default_rng(0)
    return rng.uniform(0.0, 1.0, (6, network.dof))


def apply_partials(entries, concs, dof):
    result = np.zeros(dof)
    for row, point, column, value in entries:
        result[row] += value * concs[point, column]
    return result


def test_index(network):
    grid = np.arange(6) * 0.1
    handler = BurstingHandler()
    handler.initialize(network, grid)
    # Every bubble is larger than 0.1 nm, only V_3 and beyond reach 0.2 nm
    assert handler.get_number_of_bursting(1) == 45
    assert handler.get_number_of_bursting(2) == 28
    assert handler.get_number_of_bursting(5) == 0


def test_rate(network):
    handler = BurstingHandler(burst_factor=0.5)
    handler.initialize(network, np.arange(6) * 0.1)
    handler.update_bursting_rate(network)
    assert handler.k_bursting == pytest.approx(0.5 *
                                               network.get_biggest_rate())


def test_conservation(network, concs):
    grid = np.arange(6) * 0.1
    handler = BurstingHandler()
    handler.initialize(network, grid)
    handler.update_bursting_rate(network)
    updated_conc = np.zeros_like(concs)
    handler.compute_contribution(network, concs, updated_conc, grid, 2)

    n_v = np.zeros(network.dof)
    for cluster in network.get_all():
        n_v[cluster.id - 1] = cluster.composition[1]
    assert updated_conc[2] @ n_v == pytest.approx(
        0.0, abs=1e-9 * np.abs(updated_conc[2]).max())

    bubble = network.get_by_composition((4, 5, 0)).id - 1
    assert updated_conc[2, bubble] == pytest.approx(-handler.k_bursting *
                                                    concs[2, bubble])
    # He_1V_2 is smaller than 0.2 nm
    small = network.get_by_composition((1, 2, 0)).id - 1
    assert updated_conc[2, small] == 0.0
    assert updated_conc[2, network.get('V', 5).id - 1] > 0


@pytest.mark.parametrize('properties', [None, {
    'groupingMin': '4',
    'groupingWidthA': '3'
}])
def test_partials(properties, concs):
    network = get_simple_reaction_network(properties=properties)
    network.set_temperature(1000.0)
    concs = concs[:, :network.dof]
    grid = np.arange(6) * 0.1
    handler = BurstingHandler()
    handler.initialize(network, grid)
    handler.update_bursting_rate(network)
    for xi in range(1, 5):
        updated_conc = np.zeros_like(concs)
        handler.compute_contribution(network, concs, updated_conc, grid, xi)
        entries = handler.compute_partials(network, grid, xi)
        assert np.allclose(updated_conc[xi],
                           apply_partials(entries, concs, network.dof))


def test_super_cluster_members():
    network = get_simple_reaction_network(properties={
        'groupingMin': '4',
        'groupingWidthA': '3'
    })
    handler = BurstingHandler()
    handler.initialize(network, np.arange(6) * 0.1)
    # Members are counted one by one, so grouping keeps the number of bubbles
    assert handler.get_number_of_bursting(1) == 45


def test_missing_vacancy():
    network = ReactionNetwork(
        [Cluster((1, 0, 0)),
         Cluster((0, 1, 0)),
         Cluster((1, 2, 0))])
    network.reinitialize_connectivities()
    handler = BurstingHandler()
    with pytest.warns(UserWarning):
        handler.initialize(network, np.arange(5) * 0.1)
    assert handler.get_number_of_bursting(1) == 0
