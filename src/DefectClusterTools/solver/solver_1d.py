import logging
import warnings
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy import sparse

from DefectClusterTools.handlers.advection import AdvectionHandler
from DefectClusterTools.handlers.bursting import BurstingHandler
from DefectClusterTools.handlers.diffusion import DiffusionHandler
from DefectClusterTools.handlers.flux import (FluxHandler, W221FitFluxHandler,
                                              UniformFitFluxHandler)
from DefectClusterTools.handlers.temperature import (
    TemperatureHandler, ConstantTemperatureHandler, TemperatureProfileHandler)
from DefectClusterTools.handlers.trap_mutation import TrapMutationHandler
from DefectClusterTools.io import hdf5_utils
from DefectClusterTools.options import Options
from DefectClusterTools.reactants.cluster import HE, HEV_TYPE, SUPER_TYPE
from DefectClusterTools.reactants.network import ReactionNetwork

FLUX_HANDLERS = {
    'W221': W221FitFluxHandler,
    'Fuel': UniformFitFluxHandler,
}


def generate_grid(nx: int, hx: float) -> np.ndarray:
    """
    Uniform grid of nx points spaced by hx nm, starting at 0.
    """
    if nx < 3:
        raise ValueError('The grid needs at least 3 points')
    if hx <= 0:
        raise ValueError(f'Invalid grid step {hx}')
    return np.arange(nx) * hx


class SerialCommunicator():
    """
    Stand-in for an MPI communicator when the whole grid belongs to one
    process. Any object with an allreduce(value) method, such as an mpi4py
    communicator, can be used instead.
    """
    rank = 0
    size = 1

    def allreduce(self, value):
        return value


class SparseStencilMatrix():
    """
    Sparse matrix over (grid point, dof) pairs. Values set at the same
    position are added.
    """

    def __init__(self, nx: int, dof: int):
        self.nx = nx
        self.dof = dof
        self.rows = []
        self.cols = []
        self.values = []

    def set_values_stencil(self, row: Tuple[int, int],
                           cols: Sequence[Tuple[int, int]],
                           values: Sequence[float]) -> None:
        """
        Args:
            row (Tuple[int, int]): (grid point, dof)
            cols (Sequence[Tuple[int, int]]): (grid point, dof) of each value
            values (Sequence[float]): The values to add
        """
        if len(cols) != len(values):
            raise ValueError('Expected as many values as columns')
        row_index = row[0] * self.dof + row[1]
        for (point, dof_index), value in zip(cols, values):
            self.rows.append(row_index)
            self.cols.append(point * self.dof + dof_index)
            self.values.append(value)

    def zero_entries(self) -> None:
        self.rows = []
        self.cols = []
        self.values = []

    def tocsr(self) -> sparse.csr_matrix:
        size = self.nx * self.dof
        return sparse.coo_matrix((self.values, (self.rows, self.cols)),
                                 shape=(size, size)).tocsr()


class Solver1DHandler():
    """
    Assembles the right-hand side and the Jacobian of the 1D reaction-
    diffusion problem, one grid point at a time.

    The concentrations are 2D arrays indexed by [grid point, dof]. The points
    up to the surface and the last point are boundaries whose
    concentrations are passed through unchanged. On the other points the
    contributions are added in the order: incident flux, diffusion,
    advection, trap-mutation, bursting, reactions, moments of the super
    clusters.

    The network is shared by all the grid points: its state is reloaded
    from the concentrations before each point is evaluated.

    Args:
        network (ReactionNetwork): The reaction network
        grid (Sequence[float]): Positions of the grid points in nm
        temperature_handler (TemperatureHandler): The temperature
        flux_handler (FluxHandler, None): The incident flux
        diffusion_handler (DiffusionHandler, None): The diffusion
        advection_handlers (Sequence[AdvectionHandler], None): The drifts
            toward sinks
        trap_mutation_handler (TrapMutationHandler, None): The modified
            trap-mutation
        bursting_handler (BurstingHandler, None): The bursting
        surface_position (int): Index of the grid point of the surface
        initial_v (float): Initial concentration of single vacancies
        reactions (bool): Whether the reactions of the network contribute
        communicator: Object with an allreduce(value) method used to sum the
            near-surface helium over all the processes
    """
    near_surface_depth = 2.0

    def __init__(self,
                 network: ReactionNetwork,
                 grid: Sequence[float],
                 temperature_handler: TemperatureHandler,
                 flux_handler: Optional[FluxHandler] = None,
                 diffusion_handler: Optional[DiffusionHandler] = None,
                 advection_handlers: Optional[Sequence[AdvectionHandler]] = None,
                 trap_mutation_handler: Optional[TrapMutationHandler] = None,
                 bursting_handler: Optional[BurstingHandler] = None,
                 surface_position: int = 0,
                 initial_v: float = 0.0,
                 reactions: bool = True,
                 communicator=None):
        self.network = network
        self.grid = np.asarray(grid, dtype=float)
        self.temperature_handler = temperature_handler
        self.flux_handler = flux_handler
        self.diffusion_handler = diffusion_handler
        self.advection_handlers = list(advection_handlers or [])
        self.trap_mutation_handler = trap_mutation_handler
        self.bursting_handler = bursting_handler
        self.surface_position = surface_position
        self.initial_v = initial_v
        self.reactions = reactions
        self.communicator = communicator or SerialCommunicator()
        self.last_temperature = None

        if self.diffusion_handler is not None:
            self.diffusion_handler.set_advection_handlers(
                self.advection_handlers)

    @property
    def nx(self) -> int:
        return len(self.grid)

    @property
    def dof(self) -> int:
        return self.network.dof

    @property
    def handlers(self) -> list:
        """
        The process handlers in evaluation order.
        """
        handlers = [self.flux_handler, self.diffusion_handler]
        handlers += self.advection_handlers
        handlers += [self.trap_mutation_handler, self.bursting_handler]
        return [handler for handler in handlers if handler is not None]

    @property
    def spatial_handlers(self) -> list:
        handlers = [self.diffusion_handler] + self.advection_handlers
        return [handler for handler in handlers if handler is not None]

    @property
    def local_handlers(self) -> list:
        handlers = [self.trap_mutation_handler, self.bursting_handler]
        return [handler for handler in handlers if handler is not None]

    def create_solver_context(self) -> Dict[str, List[List[int]]]:
        """
        Sets the initial temperature, initializes the connectivity of the
        network and the handlers and gets the fill pattern of the Jacobian.

        Returns:
            Dict[str, List[List[int]]]: 'dfill', for every dof the dofs of the
                same grid point it depends on, and 'ofill', for every dof the
                dofs of the neighbouring points it depends on.
        """
        temperature = self.temperature_handler.get_temperature(0.0, 0.0)
        self.network.set_temperature(temperature)
        self.network.reinitialize_connectivities()
        self.last_temperature = temperature

        self.initialize_handlers()
        self.update_rates()

        logging.info(f'Solver context: {self.nx} grid points, {self.dof} dof '
                     f'per point, surface at {self.surface_position}, '
                     f'T = {temperature} K')
        return {
            'dfill': self.get_diagonal_fill(),
            'ofill': self.get_off_diagonal_fill()
        }

    def initialize_handlers(self) -> None:
        if self.advection_handlers:
            self.advection_handlers[0].set_location(
                self.grid[self.surface_position])
        for handler in self.handlers:
            handler.initialize(self.network, self.grid, self.surface_position)

    def set_surface_position(self, surface_position: int) -> None:
        """
        Moves the surface and rebuilds the position dependent tables of the
        handlers.
        """
        if not 0 <= surface_position < self.nx - 1:
            raise ValueError(f'Invalid surface position {surface_position}')
        self.surface_position = surface_position
        self.initialize_handlers()

    def update_rates(self) -> None:
        """
        Updates the rates that depend on the reaction rates of the network.
        """
        if self.trap_mutation_handler is not None:
            self.trap_mutation_handler.update_trap_mutation_rate(self.network)
        if self.bursting_handler is not None:
            self.bursting_handler.update_bursting_rate(self.network)

    def update_temperature(self,
                           time: float,
                           xi: Optional[int] = None) -> None:
        """
        Applies the temperature of a grid point at a given time to the
        network. The rates are only recomputed when the temperature changed.

        Args:
            time (float): The time in s
            xi (int, None): The grid point. Defaults to the surface.
        """
        if xi is None:
            xi = self.surface_position
        temperature = self.temperature_handler.get_temperature(
            self.grid[xi], time)
        if temperature != self.last_temperature:
            self.network.set_temperature(temperature)
            self.last_temperature = temperature
            self.update_rates()

    def get_diagonal_fill(self) -> List[List[int]]:
        fill = [set(columns) for columns in self.network.dfill_map]
        for handler in self.local_handlers:
            for xi in range(self.nx):
                for row, point, column, _ in handler.compute_partials(
                        self.network, self.grid, xi):
                    if point == xi:
                        fill[row].add(column)
        return [sorted(columns) for columns in fill]

    def get_off_diagonal_fill(self) -> List[List[int]]:
        fill = [set() for _ in range(self.dof)]
        for handler in self.spatial_handlers:
            for row, columns in handler.initialize_ofill(self.network).items():
                fill[row].update(columns)
        return [sorted(columns) for columns in fill]

    def is_boundary(self, xi: int) -> bool:
        return xi <= self.surface_position or xi == self.nx - 1

    def initialize_concentration(self, file=None) -> np.ndarray:
        """
        Gets the initial concentrations: single vacancies at initial_v on the
        active points, or the last timestep stored in a checkpoint file.

        Args:
            file (h5py.File, None): An open checkpoint file

        Returns:
            np.ndarray: The concentrations, [grid point, dof]
        """
        has_concentrations = file is not None and \
            hdf5_utils.has_concentration_group(file)
        if has_concentrations:
            surface_position = hdf5_utils.read_surface_1d(file)
            if surface_position != self.surface_position:
                self.set_surface_position(surface_position)

        concs = np.zeros((self.nx, self.dof))
        vacancy = self.network.get('V', 1)
        if self.initial_v > 0 and vacancy is None:
            warnings.warn('The network has no single vacancy, the initial '
                          'vacancy concentration is ignored')
        elif self.initial_v > 0:
            for xi in range(self.nx):
                if not self.is_boundary(xi):
                    concs[xi, vacancy.id - 1] = self.initial_v

        if has_concentrations:
            logging.info('Restarting from the concentrations stored at '
                         f't = {hdf5_utils.read_time(file)} s')
            for xi in range(self.nx):
                values = hdf5_utils.read_grid_point(file, xi)
                concs[xi, values[:, 0].astype(int)] = values[:, 1]
        return concs

    def compute_near_surface_helium(self, concs: np.ndarray) -> float:
        """
        Integral of the helium held by the mixed clusters within 2 nm of the
        surface, summed over all the processes. Grouped clusters contribute
        through the reconstructed concentration of each member.
        """
        helium = np.zeros(self.dof)
        for bubble in self.network.get_all(HEV_TYPE):
            helium[bubble.id - 1] += bubble.composition[HE]
        for super_cluster in self.network.get_all(SUPER_TYPE):
            for k, member in enumerate(super_cluster.members):
                for index, coef in super_cluster.get_member_reconstruction(k):
                    helium[index] += member[HE] * coef

        total = 0.0
        for xi in range(self.surface_position + 1, self.nx - 1):
            if self.grid[xi] - self.grid[self.surface_position] > \
                    self.near_surface_depth:
                continue
            total += (concs[xi] @ helium) * (self.grid[xi] - self.grid[xi - 1])
        return self.communicator.allreduce(total)

    def _prepare(self, time: float, concs: np.ndarray) -> np.ndarray:
        concs = np.asarray(concs, dtype=float).reshape(self.nx, self.dof)
        total_helium = self.compute_near_surface_helium(concs)
        if self.trap_mutation_handler is not None:
            self.trap_mutation_handler.update_disappearing_rate(total_helium)
        return concs

    def _get_dof_ids(self) -> List[int]:
        dof_ids = [cluster.id for cluster in self.network.get_all()]
        for super_cluster in self.network.get_all(SUPER_TYPE):
            dof_ids += super_cluster.moment_ids
        return dof_ids

    def update_concentration(self, time: float,
                             concs: np.ndarray) -> np.ndarray:
        """
        Computes the right-hand side dC/dt.

        Args:
            time (float): The time in s
            concs (np.ndarray): The concentrations, [grid point, dof] or
                flattened

        Returns:
            np.ndarray: dC/dt with the shape of concs
        """
        shape = np.shape(concs)
        concs = self._prepare(time, concs)
        updated_conc = np.zeros_like(concs)
        super_clusters = self.network.get_all(SUPER_TYPE)

        for xi in range(self.nx):
            if self.is_boundary(xi):
                updated_conc[xi] = 1.0 * concs[xi]
                continue

            self.update_temperature(time, xi)
            self.network.ingest_local_state(concs[xi])
            for handler in self.handlers:
                handler.compute_contribution(self.network, concs, updated_conc,
                                             self.grid, xi, time)

            if not self.reactions:
                continue
            for cluster in self.network.get_all():
                updated_conc[xi, cluster.id - 1] += \
                    self.network.get_total_flux(cluster.id)
            for super_cluster in super_clusters:
                for moment, moment_id in enumerate(super_cluster.moment_ids):
                    updated_conc[xi, moment_id - 1] += \
                        self.network.get_moment_flux(super_cluster.id, moment)

        return updated_conc.reshape(shape)

    def compute_off_diagonal_jacobian(self, time: float, concs: np.ndarray,
                                      matrix: SparseStencilMatrix) -> None:
        """
        Adds the derivatives coupling neighbouring grid points (diffusion and
        advection).
        """
        self._prepare(time, concs)
        for xi in range(self.nx):
            if self.is_boundary(xi):
                continue
            self.update_temperature(time, xi)
            for handler in self.spatial_handlers:
                for row, point, column, value in handler.compute_partials(
                        self.network, self.grid, xi, time):
                    matrix.set_values_stencil((xi, row), [(point, column)],
                                              [value])

    def compute_diagonal_jacobian(self, time: float, concs: np.ndarray,
                                  matrix: SparseStencilMatrix) -> None:
        """
        Adds the derivatives within each grid point: identity on the
        boundaries, trap-mutation, bursting and reactions elsewhere.
        """
        concs = self._prepare(time, concs)
        dof_ids = self._get_dof_ids()
        dfill_map = self.network.dfill_map
        partials = np.zeros(self.dof)

        for xi in range(self.nx):
            if self.is_boundary(xi):
                for i in range(self.dof):
                    matrix.set_values_stencil((xi, i), [(xi, i)], [1.0])
                continue

            self.update_temperature(time, xi)
            for handler in self.local_handlers:
                for row, point, column, value in handler.compute_partials(
                        self.network, self.grid, xi, time):
                    matrix.set_values_stencil((xi, row), [(point, column)],
                                              [value])

            if not self.reactions:
                continue
            self.network.ingest_local_state(concs[xi])
            for dof_id in dof_ids:
                row = dof_id - 1
                self.network.get_partial_derivatives(dof_id, partials)
                columns = dfill_map[row]
                matrix.set_values_stencil((xi, row),
                                          [(xi, column) for column in columns],
                                          partials[columns])
                partials[columns] = 0.0

    def compute_jacobian(self, time: float,
                         concs: np.ndarray) -> sparse.csr_matrix:
        """
        Gets the full Jacobian d(dC/dt)/dC, of size (nx * dof, nx * dof).
        """
        matrix = SparseStencilMatrix(self.nx, self.dof)
        self.compute_off_diagonal_jacobian(time, concs, matrix)
        self.compute_diagonal_jacobian(time, concs, matrix)
        return matrix.tocsr()


def create_solver_handler(options: Options,
                          network: ReactionNetwork,
                          grid: Optional[Sequence[float]] = None,
                          communicator=None) -> Solver1DHandler:
    """
    Builds the solver handler and its process handlers from the options.

    Args:
        options (Options): The simulation options
        network (ReactionNetwork): The reaction network
        grid (Sequence[float], None): The grid. Defaults to the one described
            by the grid option.
        communicator: Object with an allreduce(value) method
    """
    if grid is None:
        if options.grid is None:
            raise ValueError('No grid was given')
        grid = generate_grid(*options.grid)

    if options.temp_file is not None:
        temperature_handler = TemperatureProfileHandler.from_file(
            options.temp_file)
    else:
        temperature_handler = ConstantTemperatureHandler(options.start_temp)

    flux_class = FLUX_HANDLERS[options.material]
    if options.flux_file is not None:
        flux_handler = flux_class.from_file(options.flux_file)
    else:
        flux_handler = flux_class(amplitude=options.flux)

    advection_handlers = []
    if options.has_process('advec'):
        advection_handlers.append(AdvectionHandler())
    diffusion_handler = None
    if options.has_process('diff'):
        diffusion_handler = DiffusionHandler()
    trap_mutation_handler = None
    if options.has_process('modifiedTM'):
        trap_mutation_handler = TrapMutationHandler()
    bursting_handler = None
    if options.has_process('bursting'):
        bursting_handler = BurstingHandler()

    surface_position = 0
    if options.has_process('movingSurface'):
        surface_position = int(len(grid) * options.void_portion / 100.0)

    return Solver1DHandler(network,
                           grid,
                           temperature_handler,
                           flux_handler=flux_handler,
                           diffusion_handler=diffusion_handler,
                           advection_handlers=advection_handlers,
                           trap_mutation_handler=trap_mutation_handler,
                           bursting_handler=bursting_handler,
                           surface_position=surface_position,
                           initial_v=options.initial_v,
                           reactions=options.has_process('reaction'),
                           communicator=communicator)
