from DefectClusterTools.handlers import TrapMutationHandler
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
    return rng.uniform(0.0, 1.0, (8, network.dof))


@pytest.fixture
def handler(network):
    handler = TrapMutationHandler()
    handler.initialize(network, np.arange(8) * 0.25)
    handler.update_trap_mutation_rate(network)
    return handler


def test_index(handler):
    # He_2 to He_7 down to 0.5 nm, then only He_5 and He_7
    assert handler.get_number_of_mutating(0) == 0
    assert handler.get_number_of_mutating(1) == 6
    assert handler.get_number_of_mutating(2) == 6
    assert handler.get_number_of_mutating(3) == 2
    assert handler.get_number_of_mutating(4) == 0
    assert handler.get_number_of_mutating(7) == 0

    handler.initialize_index_1d(np.arange(8) * 0.25, 2)
    assert handler.get_number_of_mutating(2) == 0
    assert handler.get_number_of_mutating(3) == 6
    assert handler.get_number_of_mutating(5) == 2


def test_rate(network, handler):
    assert handler.rate == pytest.approx(1000.0 * network.get_biggest_rate())
    handler.update_disappearing_rate(0.5)
    assert handler.k_disappearing == pytest.approx(np.exp(-2.0))
    assert handler.rate == pytest.approx(1000.0 * network.get_biggest_rate() *
                                         np.exp(-2.0))

    handler = TrapMutationHandler(attenuation=False)
    handler.update_disappearing_rate(0.5)
    assert handler.k_disappearing == 1.0


def test_conservation(network, handler, concs):
    updated_conc = np.zeros_like(concs)
    handler.compute_contribution(network, concs, updated_conc,
                                 np.arange(8) * 0.25, 1)
    compositions = np.zeros((network.dof, 3))
    for cluster in network.get_all():
        compositions[cluster.id - 1] = cluster.composition

    n_he, n_v, n_i = compositions.T
    assert updated_conc[1] @ n_he == pytest.approx(0.0, abs=1e-6 * np.abs(
        updated_conc[1]).max())
    assert updated_conc[1] @ (n_v - n_i) == pytest.approx(
        0.0, abs=1e-6 * np.abs(updated_conc[1]).max())

    # He_3 -> He_3V_1 + I_1
    he3 = network.get('He', 3).id - 1
    rate = handler.rate * concs[1, he3]
    assert updated_conc[1, he3] == pytest.approx(-rate)
    assert updated_conc[1, network.get_by_composition((3, 1, 0)).id -
                        1] == pytest.approx(rate)
    assert not updated_conc[[0, 2, 3, 4, 5, 6, 7]].any()


def test_partials(network, handler, concs):
    grid = np.arange(8) * 0.25
    handler.update_disappearing_rate(0.2)
    for xi in range(1, 7):
        updated_conc = np.zeros_like(concs)
        handler.compute_contribution(network, concs, updated_conc, grid, xi)
        expected = np.zeros(network.dof)
        for row, point, column, value in handler.compute_partials(
                network, grid, xi):
            assert point == xi
            expected[row] += value * concs[point, column]
        assert np.allclose(updated_conc[xi], expected)


def test_missing_interstitial():
    network = ReactionNetwork(
        [Cluster((1, 0, 0)),
         Cluster((2, 0, 0)),
         Cluster((2, 1, 0))])
    network.reinitialize_connectivities()
    handler = TrapMutationHandler()
    with pytest.warns(UserWarning):
        handler.initialize(network, np.arange(5) * 0.25)
    assert handler.get_number_of_mutating(1) == 0


def test_serialization():
    handler = TrapMutationHandler(depths=[0.0, 1.0], attenuation=False)
    new_handler = TrapMutationHandler.from_dict(handler.as_dict())
    assert new_handler.depths == [0.0, 1.0]
    assert not new_handler.attenuation
