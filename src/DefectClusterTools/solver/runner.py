import argparse
import logging
import os
from typing import Optional, Sequence

import h5py
import numpy as np
from scipy.integrate import solve_ivp

from DefectClusterTools.io import hdf5_utils
from DefectClusterTools.options import Options
from DefectClusterTools.reactants.builders import build_psi_network
from DefectClusterTools.reactants.network import ReactionNetwork
from DefectClusterTools.solver.solver_1d import (Solver1DHandler,
                                                 create_solver_handler,
                                                 generate_grid)


def get_solver_parser():
    parser = argparse.ArgumentParser(
        description='Integrates a 1D defect cluster simulation')

    parser.add_argument('parameter_file',
                        help='Parameter (key=value) or json options file',
                        type=str)
    parser.add_argument('-t',
                        '--final_time',
                        help='The final time in s',
                        type=float,
                        required=True)
    parser.add_argument('-n',
                        '--num_steps',
                        help='The number of checkpoints written',
                        type=int,
                        default=10)
    parser.add_argument('-o',
                        '--output_file',
                        help='The checkpoint file to write',
                        type=str,
                        default='checkpoint.h5')
    parser.add_argument('--rtol',
                        help='Relative tolerance of the integrator',
                        type=float,
                        default=1e-6)
    parser.add_argument('--atol',
                        help='Absolute tolerance of the integrator',
                        type=float,
                        default=1e-10)
    return parser


def build_network(options: Options) -> ReactionNetwork:
    """
    Reads the network file of the options, or generates a network from
    netParam when there is none.
    """
    properties = options.network_properties()
    if options.network_file is not None:
        with h5py.File(options.network_file, 'r') as f:
            return hdf5_utils.read_network(f, properties, initialize=False)
    if options.net_param is None:
        raise ValueError('Either networkFile or netParam is required')
    return build_psi_network(*options.net_param,
                             properties=properties,
                             initialize=False)


def build_solver(options: Options) -> Solver1DHandler:
    network = build_network(options)
    grid = None
    if options.network_file is not None:
        with h5py.File(options.network_file, 'r') as f:
            if 'headerGroup' in f:
                grid = generate_grid(*hdf5_utils.read_header(f))
    return create_solver_handler(options, network, grid=grid)


def run_simulation(options: Options,
                   final_time: float,
                   num_steps: int = 10,
                   output_file: Optional[str] = None,
                   rtol: float = 1e-6,
                   atol: float = 1e-10):
    """
    Integrates the simulation with an implicit (BDF) scheme using the
    analytic Jacobian. When the network file holds concentrations, the
    simulation restarts from the last stored timestep.

    Returns:
        Tuple[np.ndarray, np.ndarray]: The times and the concentrations,
            [time, grid point, dof]
    """
    solver = build_solver(options)
    solver.create_solver_context()

    start_time = 0.0
    if options.network_file is not None:
        with h5py.File(options.network_file, 'r') as f:
            concs = solver.initialize_concentration(f)
            if hdf5_utils.has_concentration_group(f):
                start_time = hdf5_utils.read_time(f)
    else:
        concs = solver.initialize_concentration()

    times = np.linspace(start_time, final_time, num_steps + 1)
    logging.info(f'Integrating from t = {start_time} s to t = {final_time} s '
                 f'with {solver.nx * solver.dof} unknowns')

    sol = solve_ivp(lambda t, y: solver.update_concentration(t, y),
                    (start_time, final_time),
                    concs.flatten(),
                    method='BDF',
                    t_eval=times,
                    jac=lambda t, y: solver.compute_jacobian(t, y),
                    rtol=rtol,
                    atol=atol)
    if not sol.success:
        raise RuntimeError(f'The integration failed: {sol.message}')

    results = sol.y.T.reshape(len(sol.t), solver.nx, solver.dof)
    if output_file is not None:
        save_checkpoints(output_file, solver, sol.t, results)
    return sol.t, results


def save_checkpoints(output_file: str, solver: Solver1DHandler,
                     times: Sequence[float], results: np.ndarray) -> None:
    grid = solver.grid
    with h5py.File(output_file, 'w') as f:
        hdf5_utils.write_header(f, solver.nx, float(grid[1] - grid[0]))
        hdf5_utils.write_network(f, solver.network)
        for timestep, (time, concs) in enumerate(zip(times, results)):
            hdf5_utils.add_concentration_timestep(f, timestep, float(time),
                                                  solver.surface_position,
                                                  concs)
    logging.info(f'Wrote {len(times)} timesteps to {output_file}')


def main(args: Optional[Sequence[str]] = None):
    parser = get_solver_parser()
    args = parser.parse_args(args)

    logging.basicConfig(level=logging.INFO)
    options = Options.from_file(args.parameter_file)
    if os.path.abspath(args.output_file) == os.path.abspath(
            options.network_file or ''):
        parser.error('The output file must differ from the network file')
    run_simulation(options,
                   args.final_time,
                   num_steps=args.num_steps,
                   output_file=args.output_file,
                   rtol=args.rtol,
                   atol=args.atol)


if __name__ == '__main__':
    main()
