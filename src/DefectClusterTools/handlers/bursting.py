import warnings
from typing import List

from DefectClusterTools.handlers.base import ProcessHandler, PartialEntry
from DefectClusterTools.reactants.cluster import HEV_TYPE, SUPER_TYPE, V
from DefectClusterTools.reactants.physics import get_reaction_radius


class BurstingHandler(ProcessHandler):
    """
    Bursting of the helium bubbles that reach the surface: a He_aV_b cluster
    closer to the surface than its radius releases its helium and leaves V_b
    behind.

    Bubbles grouped in super clusters burst member by member, with the
    member concentration reconstructed from the moments.

    Args:
        burst_factor (float): Ratio between the bursting rate and the
            largest reaction rate of the network
    """

    def __init__(self, burst_factor: float = 0.1):
        self.burst_factor = burst_factor
        self.k_bursting = 0.0
        self.bubbles = []
        self.index_1d = {}

    def _initialize(self, network, grid, surface_position):
        self.bubbles = []
        missing = set()
        for cluster in network.get_all():
            if cluster.type_name == HEV_TYPE:
                members = [(cluster.composition, [(cluster.id - 1, 1.0)],
                            [(cluster.id - 1, 1.0)])]
            elif cluster.type_name == SUPER_TYPE:
                members = [
                    (member, cluster.get_member_reconstruction(k),
                     cluster.get_member_projection(k))
                    for k, member in enumerate(cluster.members)
                ]
            else:
                continue
            for composition, reconstruction, projection in members:
                vacancy = network.get('V', composition[V])
                if vacancy is None:
                    missing.add(composition[V])
                    continue
                self.bubbles.append((get_reaction_radius(composition),
                                     reconstruction, projection,
                                     vacancy.id - 1))
        if missing:
            warnings.warn('No vacancy cluster of size '
                          f'{sorted(missing)} in the network, the '
                          'corresponding bubbles do not burst')
        self.initialize_index_1d(grid, surface_position)

    def initialize_index_1d(self, grid, surface_position: int) -> None:
        self.index_1d = {}
        for xi in range(surface_position + 1, len(grid) - 1):
            depth = grid[xi] - grid[surface_position]
            self.index_1d[xi] = [
                bubble[1:] for bubble in self.bubbles if depth <= bubble[0]
            ]

    def update_bursting_rate(self, network) -> None:
        self.k_bursting = self.burst_factor * network.get_biggest_rate()

    def get_number_of_bursting(self, xi: int) -> int:
        return len(self.index_1d.get(xi, []))

    def compute_contribution(self,
                             network,
                             concs,
                             updated_conc,
                             grid,
                             xi,
                             time=0.0):
        self.check_generation(network)
        for reconstruction, projection, vacancy in self.index_1d.get(xi, []):
            flux = self.k_bursting * sum(
                coefficient * concs[xi, index]
                for index, coefficient in reconstruction)
            for index, weight in projection:
                updated_conc[xi, index] -= weight * flux
            updated_conc[xi, vacancy] += flux

    def compute_partials(self, network, grid, xi,
                         time=0.0) -> List[PartialEntry]:
        self.check_generation(network)
        entries = []
        for reconstruction, projection, vacancy in self.index_1d.get(xi, []):
            for column, coefficient in reconstruction:
                value = self.k_bursting * coefficient
                for index, weight in projection:
                    entries.append((index, xi, column, -weight * value))
                entries.append((vacancy, xi, column, value))
        return entries
