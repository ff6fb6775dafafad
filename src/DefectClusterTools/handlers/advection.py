from typing import Dict, List, Sequence

import numpy as np

from DefectClusterTools.handlers.base import ProcessHandler, PartialEntry
from DefectClusterTools.util.constants import kBoltzmann, sinkTolerance

# Sink strengths (eV nm^3) of the small helium clusters near a tungsten surface
W_SINK_STRENGTHS = [
    [[1, 0, 0], 0.54e-3],
    [[2, 0, 0], 1.01e-3],
    [[3, 0, 0], 3.03e-3],
    [[4, 0, 0], 3.93e-3],
    [[5, 0, 0], 7.24e-3],
    [[6, 0, 0], 10.82e-3],
    [[7, 0, 0], 19.26e-3],
]


class AdvectionHandler(ProcessHandler):
    """
    Drift of the mobile clusters toward a sink plane, with a velocity
    proportional to A / dist^4 where A = 3 S D / (kB T).

    Away from the sink the stencil is one-sided and uses the neighbour on
    the far side of the point. A point on the sink collects the clusters of
    both of its neighbours.

    Args:
        sink_strengths (Sequence, None): [composition, strength] pairs.
            Defaults to the tungsten values of He_1 to He_7.
        location (float, None): Position of the sink in nm. Defaults to the
            position of the surface.
        cutoff (float): Distance in nm beyond which there is no drift
    """

    def __init__(self,
                 sink_strengths: Sequence | None = None,
                 location: float | None = None,
                 cutoff: float = 10.0):
        if sink_strengths is None:
            sink_strengths = W_SINK_STRENGTHS
        self.sink_strengths = [[list(composition), float(strength)]
                               for composition, strength in sink_strengths]
        self.location = location
        self.cutoff = cutoff
        self.sink_position = location if location is not None else 0.0
        self.clusters = []
        self.strengths = np.zeros(0)
        self.indices = np.zeros(0, dtype=int)

    def set_location(self, location: float) -> None:
        self.location = location
        self.sink_position = location

    def is_point_on_sink(self, position: float) -> bool:
        return abs(position - self.sink_position) < sinkTolerance

    def get_stencil_for_advection(self, position: float) -> List[int]:
        """
        Offsets of the neighbouring grid points a point is coupled to.
        """
        if self.is_point_on_sink(position):
            return [-1, 1]
        if position > self.sink_position:
            return [1]
        return [-1]

    def _initialize(self, network, grid, surface_position):
        if self.location is None:
            self.sink_position = float(grid[surface_position])
        self.clusters = []
        strengths = []
        for composition, strength in self.sink_strengths:
            cluster = network.get_by_composition(composition)
            if cluster is None or not cluster.is_mobile:
                continue
            self.clusters.append(cluster)
            strengths.append(strength)
        self.strengths = np.array(strengths)
        self.indices = np.array([c.id - 1 for c in self.clusters], dtype=int)

    def initialize_ofill(self, network) -> Dict[int, List[int]]:
        ofill = {}
        for composition, _ in self.sink_strengths:
            cluster = network.get_by_composition(composition)
            if cluster is not None and cluster.is_mobile:
                ofill[cluster.id - 1] = [cluster.id - 1]
        return ofill

    def get_number_of_advecting(self) -> int:
        return len(self.clusters)

    def _get_coefficients(self, grid, xi):
        """
        Gets, for every advecting cluster, the coefficient of each grid point
        of the stencil as a {grid point: coefficient array} dict.
        """
        if len(self.clusters) == 0 or xi <= 0 or xi >= len(grid) - 1:
            return {}
        position = grid[xi]
        distance = position - self.sink_position
        if not self.is_point_on_sink(position) and abs(distance) > self.cutoff:
            return {}

        diffusion = np.array(
            [cluster.diffusion_coefficient for cluster in self.clusters])
        temperature = self.clusters[0].temperature
        prefactor = 3.0 * self.strengths * diffusion / (kBoltzmann *
                                                        temperature)
        h_left = grid[xi] - grid[xi - 1]
        h_right = grid[xi + 1] - grid[xi]

        if self.is_point_on_sink(position):
            return {
                xi - 1: prefactor / h_left**5,
                xi + 1: prefactor / h_right**5,
            }
        if distance > 0:
            return {
                xi: -prefactor / (distance**4 * h_right),
                xi + 1: prefactor / ((distance + h_right)**4 * h_right),
            }
        distance = -distance
        return {
            xi: -prefactor / (distance**4 * h_left),
            xi - 1: prefactor / ((distance + h_left)**4 * h_left),
        }

    def compute_contribution(self,
                             network,
                             concs,
                             updated_conc,
                             grid,
                             xi,
                             time=0.0):
        self.check_generation(network)
        for point, coefficients in self._get_coefficients(grid, xi).items():
            updated_conc[xi, self.indices] += coefficients * concs[
                point, self.indices]

    def compute_partials(self, network, grid, xi,
                         time=0.0) -> List[PartialEntry]:
        self.check_generation(network)
        entries = []
        for point, coefficients in self._get_coefficients(grid, xi).items():
            for index, value in zip(self.indices, coefficients):
                entries.append((index, point, index, value))
        return entries
