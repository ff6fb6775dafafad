import weakref
from typing import List, Optional, Sequence

import numpy as np
from monty.json import MSONable

from DefectClusterTools.reactants.physics import (
    get_default_formation_energy, get_default_diffusion_parameters,
    get_reaction_radius, get_diffusion_coefficient)

# Positions of the elementary species in a composition tuple
HE, V, I = 0, 1, 2
SPECIES = ('He', 'V', 'I')

HE_TYPE = 'He'
V_TYPE = 'V'
I_TYPE = 'I'
HEV_TYPE = 'HeV'
HEI_TYPE = 'HeI'
SUPER_TYPE = 'Super'

SINGLE_SPECIES_TYPES = (HE_TYPE, V_TYPE, I_TYPE)


def get_cluster_type(composition: Sequence[int]) -> str:
    """
    Gets the type tag of a composition.

    Args:
        composition (Sequence[int]): (nHe, nV, nI)

    Returns:
        str: One of 'He', 'V', 'I', 'HeV' or 'HeI'
    """
    if len(composition) != 3 or any(n < 0 for n in composition):
        raise ValueError(f'Invalid composition {tuple(composition)}')
    n_he, n_v, n_i = composition
    if n_v > 0 and n_i > 0:
        raise ValueError('A cluster cannot contain both vacancies and '
                         f'interstitials: {tuple(composition)}')
    if n_he > 0:
        if n_v > 0:
            return HEV_TYPE
        if n_i > 0:
            return HEI_TYPE
        return HE_TYPE
    if n_v > 0:
        return V_TYPE
    if n_i > 0:
        return I_TYPE
    raise ValueError('Empty composition')


def get_cluster_name(composition: Sequence[int]) -> str:
    """
    Builds a readable name such as 'He_2V_1' from a composition.
    """
    return ''.join(f'{symbol}_{n}' for symbol, n in zip(SPECIES, composition)
                   if n > 0)


class Cluster(MSONable):
    """
    A population of defects sharing one exact composition.

    The identity of the cluster (its composition and physical parameters) is
    fixed at construction. Its id and its concentration belong to the
    reaction network that owns it: the id is assigned each time the network
    connectivity is reinitialized and the concentration is read from the
    state last ingested by the network.

    Args:
        composition (Sequence[int]): The number of helium, vacancies and
            interstitials (nHe, nV, nI).
        formation_energy (float, None): Formation energy in eV. Defaults to a
            capillary-law estimate.
        migration_energy (float, None): Migration energy in eV.
        diffusion_factor (float, None): Diffusion prefactor in nm^2/s. A
            cluster with a diffusion factor of 0 is immobile. Defaults to the
            tabulated values for small mobile clusters.
    """

    def __init__(self,
                 composition: Sequence[int],
                 formation_energy: Optional[float] = None,
                 migration_energy: Optional[float] = None,
                 diffusion_factor: Optional[float] = None):
        self.composition = tuple(int(n) for n in composition)
        self.type_name = get_cluster_type(self.composition)

        if formation_energy is None:
            formation_energy = get_default_formation_energy(self.composition)
        default_factor, default_energy = get_default_diffusion_parameters(
            self.composition)
        if diffusion_factor is None:
            diffusion_factor = default_factor
        if migration_energy is None:
            migration_energy = default_energy

        self.formation_energy = float(formation_energy)
        self.migration_energy = float(migration_energy)
        self.diffusion_factor = float(diffusion_factor)
        self.reaction_radius = get_reaction_radius(self.composition)

        self.id = None
        self.temperature = 0.0
        self.diffusion_coefficient = 0.0
        self._network = None

    @property
    def name(self) -> str:
        return get_cluster_name(self.composition)

    @property
    def size(self) -> int:
        return sum(self.composition)

    @property
    def is_mobile(self) -> bool:
        return self.diffusion_factor > 0

    def __str__(self) -> str:
        return f'{self.name} (id={self.id})'

    def __repr__(self) -> str:
        return self.__str__()

    @property
    def network(self):
        """
        The reaction network this cluster is registered with, or None.
        """
        if self._network is None:
            return None
        return self._network()

    def set_reaction_network(self, network) -> None:
        self._network = weakref.ref(network)

    def set_temperature(self, temperature: float) -> None:
        """
        Updates the temperature dependent diffusion coefficient.

        Args:
            temperature (float): Temperature in K
        """
        self.temperature = temperature
        self.diffusion_coefficient = float(
            get_diffusion_coefficient(self.diffusion_factor,
                                      self.migration_energy, temperature))

    def _get_network(self):
        network = self.network
        if network is None or self.id is None:
            raise RuntimeError(f'{self.name} is not part of an initialized '
                               'reaction network')
        return network

    @property
    def concentration(self) -> float:
        return self._get_network().get_concentration(self.id)

    def get_total_flux(self) -> float:
        """
        Net production rate of this cluster from all its reactions at the
        state last ingested by the network.
        """
        return self._get_network().get_total_flux(self.id)

    def get_partial_derivatives(self, partials: np.ndarray) -> np.ndarray:
        """
        Adds the partial derivatives of the total flux with respect to every
        degree of freedom into partials.
        """
        return self._get_network().get_partial_derivatives(self.id, partials)

    def get_connectivity(self) -> List[int]:
        """
        0/1 list over the network cluster ids, with a 1 for every cluster
        this cluster reacts with.
        """
        return self._get_network().get_connectivity(self.id)
