from typing import Dict, List, Sequence

import numpy as np

from DefectClusterTools.handlers.base import ProcessHandler, PartialEntry
from DefectClusterTools.reactants.cluster import SUPER_TYPE


class DiffusionHandler(ProcessHandler):
    """
    Fick diffusion of the mobile clusters with a 3-point stencil on a
    non-uniform grid:

        dc/dt = 2 D (c_L + (h_L / h_R) c_R - (1 + h_L / h_R) c_0)
                / (h_L (h_L + h_R))

    Points lying on the sink of one of the advection handlers do not
    diffuse.

    Args:
        advection_handlers (Sequence[AdvectionHandler], None): The advection
            handlers whose sinks switch off diffusion.
    """

    def __init__(self, advection_handlers: Sequence | None = None):
        self.advection_handlers = list(advection_handlers or [])
        self.clusters = []
        self.indices = np.zeros(0, dtype=int)

    def set_advection_handlers(self, advection_handlers: Sequence) -> None:
        self.advection_handlers = list(advection_handlers)

    def _initialize(self, network, grid, surface_position):
        self.clusters = [
            cluster for cluster in network.get_all()
            if cluster.type_name != SUPER_TYPE and cluster.is_mobile
        ]
        self.indices = np.array([c.id - 1 for c in self.clusters], dtype=int)

    def initialize_ofill(self, network) -> Dict[int, List[int]]:
        """
        Gets the dofs coupled to the same dof on the neighbouring points.
        """
        return {
            cluster.id - 1: [cluster.id - 1]
            for cluster in network.get_all()
            if cluster.type_name != SUPER_TYPE and cluster.is_mobile
        }

    def get_number_of_diffusing(self) -> int:
        return len(self.clusters)

    def _is_active(self, grid, xi) -> bool:
        if xi <= 0 or xi >= len(grid) - 1:
            return False
        return not any(
            handler.is_point_on_sink(grid[xi])
            for handler in self.advection_handlers)

    def _get_coefficients(self, grid, xi):
        h_left = grid[xi] - grid[xi - 1]
        h_right = grid[xi + 1] - grid[xi]
        diffusion = np.array(
            [cluster.diffusion_coefficient for cluster in self.clusters])
        left = 2.0 * diffusion / (h_left * (h_left + h_right))
        middle = -2.0 * diffusion / (h_left * h_right)
        right = 2.0 * diffusion / (h_right * (h_left + h_right))
        return left, middle, right

    def compute_contribution(self,
                             network,
                             concs,
                             updated_conc,
                             grid,
                             xi,
                             time=0.0):
        self.check_generation(network)
        if len(self.clusters) == 0 or not self._is_active(grid, xi):
            return
        left, middle, right = self._get_coefficients(grid, xi)
        updated_conc[xi, self.indices] += (
            left * concs[xi - 1, self.indices] +
            middle * concs[xi, self.indices] +
            right * concs[xi + 1, self.indices])

    def compute_partials(self, network, grid, xi,
                         time=0.0) -> List[PartialEntry]:
        self.check_generation(network)
        if len(self.clusters) == 0 or not self._is_active(grid, xi):
            return []
        left, middle, right = self._get_coefficients(grid, xi)
        entries = []
        for k, index in enumerate(self.indices):
            entries.append((index, xi - 1, index, left[k]))
            entries.append((index, xi, index, middle[k]))
            entries.append((index, xi + 1, index, right[k]))
        return entries
