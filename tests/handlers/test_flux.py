from DefectClusterTools.handlers import (W221FitFluxHandler,
                                         UniformFitFluxHandler)
from DefectClusterTools.reactants import (Cluster, ReactionNetwork,
                                          get_simple_reaction_network)

import numpy as np
import pytest


@pytest.fixture
def network():
    network = get_simple_reaction_network()
    network.set_temperature(1000.0)
    return network


def test_w221_profile(network):
    grid = np.arange(5) * 1.25
    handler = W221FitFluxHandler()
    handler.initialize(network, grid, 0)

    flux = handler.get_incident_flux_vec(1.0, grid, 0)
    assert flux[0] == 0.0
    assert flux[4] == 0.0
    assert flux[1] == pytest.approx(0.431739, rel=1e-2)
    assert flux[2] == pytest.approx(0.250454, rel=1e-2)
    assert flux[3] == pytest.approx(0.117806, rel=1e-2)


def test_w221_cutoff():
    handler = W221FitFluxHandler()
    assert np.allclose(handler.fit_function([6.2, 10.0]), 0.0)
    assert handler.fit_function(0.0) == pytest.approx(0.661661)


def test_normalization():
    grid = np.cumsum([0.0, 0.1, 0.2, 0.5, 0.5, 1.0, 1.0, 2.0])
    handler = W221FitFluxHandler(amplitude=3.0)
    for surface_position in (0, 2):
        flux = handler.get_incident_flux_vec(0.0, grid, surface_position)
        assert np.all(flux[:surface_position + 1] == 0.0)
        assert np.sum(flux[1:] * np.diff(grid)) == pytest.approx(3.0)

    handler = UniformFitFluxHandler(amplitude=2.0)
    flux = handler.get_incident_flux_vec(0.0, grid, 0)
    assert np.allclose(flux[1:-1], 2.0 / (grid[-2] - grid[0]))


def test_time_profile(tmp_path):
    handler = UniformFitFluxHandler(time_profile=([0.0, 10.0], [0.0, 2.0]))
    assert handler.get_flux_amplitude(5.0) == pytest.approx(1.0)
    assert handler.get_flux_amplitude(20.0) == pytest.approx(2.0)

    np.savetxt(tmp_path / 'flux.txt', [[0.0, 1.0], [1.0, 3.0]])
    handler = W221FitFluxHandler.from_file(str(tmp_path / 'flux.txt'))
    assert handler.get_flux_amplitude(0.5) == pytest.approx(2.0)

    new_handler = W221FitFluxHandler.from_dict(handler.as_dict())
    assert new_handler.get_flux_amplitude(0.5) == pytest.approx(2.0)


def test_contribution(network):
    grid = np.arange(6) * 1.0
    handler = W221FitFluxHandler(amplitude=10.0)
    handler.initialize(network, grid, 0)
    concs = np.zeros((6, network.dof))
    updated_conc = np.zeros_like(concs)

    handler.compute_contribution(network, concs, updated_conc, grid, 2, 0.0)
    helium = network.get('He', 1).id - 1
    assert updated_conc[2, helium] == pytest.approx(
        10.0 * handler.incident_flux_vec[2])
    assert np.count_nonzero(updated_conc) == 1
    assert handler.compute_partials(network, grid, 2) == []


def test_missing_helium():
    network = ReactionNetwork([Cluster((0, 1, 0)), Cluster((0, 2, 0))])
    network.reinitialize_connectivities()
    grid = np.arange(5) * 1.0
    handler = W221FitFluxHandler()
    with pytest.warns(UserWarning):
        handler.initialize(network, grid, 0)

    concs = np.zeros((5, network.dof))
    updated_conc = np.zeros_like(concs)
    handler.compute_contribution(network, concs, updated_conc, grid, 2)
    assert not updated_conc.any()


def test_stale_handler(network):
    grid = np.arange(5) * 1.0
    handler = W221FitFluxHandler()
    concs = np.zeros((5, network.dof))
    with pytest.raises(RuntimeError):
        handler.compute_contribution(network, concs, concs.copy(), grid, 2)

    handler.initialize(network, grid, 0)
    network.reinitialize_connectivities()
    with pytest.raises(RuntimeError):
        handler.compute_contribution(network, concs, concs.copy(), grid, 2)
