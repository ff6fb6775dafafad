from abc import ABC, abstractmethod
from typing import List, Sequence, Tuple

import numpy as np
from monty.json import MSONable

# (row dof, column grid point, column dof, value)
PartialEntry = Tuple[int, int, int, float]


class ProcessHandler(ABC, MSONable):
    """
    Template for a physical process acting on the degrees of freedom of a
    1D grid.

    A handler builds its index tables from the network in initialize() and
    only holds dof indices afterwards. The tables are tied to the
    connectivity generation of the network they were built from, so a
    handler must be initialized again after every
    ReactionNetwork.reinitialize_connectivities().

    Concentrations are passed as 2D arrays indexed by [grid point, dof].
    """

    def initialize(self,
                   network,
                   grid: Sequence[float],
                   surface_position: int = 0) -> None:
        """
        Builds the index tables of the handler.

        Args:
            network (ReactionNetwork): An initialized network
            grid (Sequence[float]): Positions of the grid points in nm
            surface_position (int): Index of the grid point of the surface
        """
        self._generation = network.generation
        self.surface_position = surface_position
        self._initialize(network, np.asarray(grid, dtype=float),
                         surface_position)

    @abstractmethod
    def _initialize(self, network, grid: np.ndarray,
                    surface_position: int) -> None:
        raise NotImplementedError

    def check_generation(self, network) -> None:
        generation = getattr(self, '_generation', None)
        if generation is None:
            raise RuntimeError(
                f'{self.__class__.__name__} has not been initialized')
        if generation != network.generation:
            raise RuntimeError(
                f'{self.__class__.__name__} was initialized for connectivity '
                f'generation {generation}, the network is at generation '
                f'{network.generation}')

    @abstractmethod
    def compute_contribution(self,
                             network,
                             concs: np.ndarray,
                             updated_conc: np.ndarray,
                             grid: np.ndarray,
                             xi: int,
                             time: float = 0.0) -> None:
        """
        Adds the contribution of the process at grid point xi into
        updated_conc[xi].

        Args:
            network (ReactionNetwork): The network the handler was
                initialized with
            concs (np.ndarray): Current concentrations, [grid point, dof]
            updated_conc (np.ndarray): The flux being assembled, same shape
            grid (np.ndarray): Positions of the grid points in nm
            xi (int): The grid point
            time (float): Current time in s
        """
        raise NotImplementedError

    @abstractmethod
    def compute_partials(self,
                         network,
                         grid: np.ndarray,
                         xi: int,
                         time: float = 0.0) -> List[PartialEntry]:
        """
        Gets the derivatives of the contribution at grid point xi.

        Returns:
            List[PartialEntry]: (row dof, column grid point, column dof,
                value) entries. The row grid point is xi.
        """
        raise NotImplementedError
