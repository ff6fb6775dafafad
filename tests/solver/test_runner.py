from DefectClusterTools.io import hdf5_utils
from DefectClusterTools.options import Options
from DefectClusterTools.solver.runner import (get_solver_parser, build_network,
                                              build_solver, run_simulation,
                                              main)

import h5py
import numpy as np
import pytest


@pytest.fixture
def options():
    return Options(net_param=[3, 3, 3], grid=[5, 0.5], flux=10.0)


def test_parser():
    parser = get_solver_parser()
    args = parser.parse_args(['params.txt', '-t', '1e-6'])
    assert args.parameter_file == 'params.txt'
    assert args.final_time == 1e-6
    assert args.num_steps == 10
    assert args.output_file == 'checkpoint.h5'

    args = parser.parse_args(
        ['params.txt', '-t', '2', '-n', '4', '-o', 'out.h5', '--rtol', '1e-3'])
    assert args.num_steps == 4
    assert args.output_file == 'out.h5'
    assert args.rtol == 1e-3

    with pytest.raises(SystemExit):
        parser.parse_args(['params.txt'])


def test_build_network(options):
    network = build_network(options)
    assert not network.initialized
    assert len(network.get_all('He')) == 3
    assert network.properties['dissociationsEnabled'] == 'true'

    with pytest.raises(ValueError):
        build_network(Options(grid=[5, 0.5]))


def test_run_simulation(options, tmp_path):
    output_file = str(tmp_path / 'checkpoint.h5')
    times, results = run_simulation(options,
                                    1e-8,
                                    num_steps=2,
                                    output_file=output_file)
    assert np.allclose(times, [0.0, 5e-9, 1e-8])
    assert results.shape[:2] == (3, 5)
    assert not results[0].any()

    # Helium is implanted below the surface
    network = build_network(options)
    network.reinitialize_connectivities()
    helium = network.get('He', 1).id - 1
    assert results[-1, 1:4, helium].sum() > 0
    assert np.allclose(results[-1, [0, 4]], 0.0)

    with h5py.File(output_file, 'r') as f:
        assert hdf5_utils.read_header(f) == (5, 0.5)
        assert hdf5_utils.read_time(f) == pytest.approx(1e-8)
        assert f['concentrationsGroup'].attrs['lastTimeStep'] == 2
        assert hdf5_utils.read_network(f).dof == results.shape[2]

    # Restart from the last checkpoint
    restart = Options(network_file=output_file)
    solver = build_solver(restart)
    assert solver.nx == 5
    times, restarted = run_simulation(restart, 2e-8, num_steps=1)
    assert np.allclose(times, [1e-8, 2e-8])
    assert np.allclose(restarted[0], results[-1])


def test_main(tmp_path):
    parameter_file = tmp_path / 'params.txt'
    parameter_file.write_text('netParam=2 2 2\n'
                              'grid=4 1.0\n'
                              'startTemp=900\n'
                              'process=diff reaction\n')
    output_file = tmp_path / 'out.h5'
    main([
        str(parameter_file), '-t', '1e-9', '-n', '1', '-o',
        str(output_file)
    ])
    with h5py.File(output_file, 'r') as f:
        assert hdf5_utils.read_time(f) == pytest.approx(1e-9)
        assert hdf5_utils.read_surface_1d(f) == 0
