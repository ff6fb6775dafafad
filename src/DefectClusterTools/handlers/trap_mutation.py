import math
import warnings
from typing import List, Sequence

from DefectClusterTools.handlers.base import ProcessHandler, PartialEntry

# Largest depth (nm) at which He_k trap-mutates below a W(100) surface,
# indexed by k - 1. Negative values disable the mutation.
W100_DEPTHS = [-0.1, 0.5, 0.6, 0.6, 0.8, 0.6, 0.8]


class TrapMutationHandler(ProcessHandler):
    """
    Modified trap-mutation near the surface: He_k pushes a tungsten atom out
    of its lattice site and becomes He_kV_1 + I_1.

    The rate is 1000 times the largest reaction rate of the network. When
    attenuation is on, it is further multiplied by exp(-4 * He) where He is
    the total helium concentration held by the mixed clusters near the
    surface, which the solver computes with a collective reduction.

    Args:
        depths (Sequence[float], None): Largest mutation depth of He_k in nm,
            indexed by k - 1. Defaults to the W(100) table.
        attenuation (bool): Whether the rate decreases with the near-surface
            helium content
    """

    rate_factor = 1000.0

    def __init__(self,
                 depths: Sequence[float] | None = None,
                 attenuation: bool = True):
        self.depths = list(depths) if depths is not None else list(W100_DEPTHS)
        self.attenuation = attenuation
        self.k_mutation = 0.0
        self.k_disappearing = 1.0
        self.bonds = []
        self.index_1d = {}

    def _initialize(self, network, grid, surface_position):
        self.bonds = []
        interstitial = network.get('I', 1)
        if interstitial is None:
            warnings.warn('The network has no single interstitial, the trap '
                          'mutation is disabled')
        else:
            for k, depth in enumerate(self.depths, start=1):
                if depth <= 0:
                    continue
                helium = network.get('He', k)
                projection = network.get_projection((k, 1, 0))
                if helium is None or projection is None:
                    continue
                self.bonds.append(
                    (depth, helium.id - 1, projection, interstitial.id - 1))
        self.initialize_index_1d(grid, surface_position)

    def initialize_index_1d(self, grid: Sequence[float],
                            surface_position: int) -> None:
        """
        Lists, for every grid point, the helium clusters that can mutate
        there.
        """
        self.index_1d = {}
        for xi in range(surface_position + 1, len(grid) - 1):
            depth = grid[xi] - grid[surface_position]
            self.index_1d[xi] = [
                bond[1:] for bond in self.bonds if depth <= bond[0]
            ]

    def update_trap_mutation_rate(self, network) -> None:
        self.k_mutation = self.rate_factor * network.get_biggest_rate()

    def update_disappearing_rate(self, total_helium: float) -> None:
        self.k_disappearing = math.exp(
            -4.0 * total_helium) if self.attenuation else 1.0

    @property
    def rate(self) -> float:
        return self.k_mutation * self.k_disappearing

    def get_number_of_mutating(self, xi: int) -> int:
        return len(self.index_1d.get(xi, []))

    def compute_contribution(self,
                             network,
                             concs,
                             updated_conc,
                             grid,
                             xi,
                             time=0.0):
        self.check_generation(network)
        for helium, projection, interstitial in self.index_1d.get(xi, []):
            flux = self.rate * concs[xi, helium]
            updated_conc[xi, helium] -= flux
            for index, weight in projection:
                updated_conc[xi, index] += weight * flux
            updated_conc[xi, interstitial] += flux

    def compute_partials(self, network, grid, xi,
                         time=0.0) -> List[PartialEntry]:
        self.check_generation(network)
        rate = self.rate
        entries = []
        for helium, projection, interstitial in self.index_1d.get(xi, []):
            entries.append((helium, xi, helium, -rate))
            for index, weight in projection:
                entries.append((index, xi, helium, weight * rate))
            entries.append((interstitial, xi, helium, rate))
        return entries
