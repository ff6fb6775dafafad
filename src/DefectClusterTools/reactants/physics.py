"""
Default physical parameters of the defect clusters.

These are the pluggable parts of the model: the network only needs a
formation energy, a migration energy, a diffusion factor and a reaction radius
for every composition. Values loaded from a network file take precedence over
the defaults below.
"""
from typing import Tuple

import numpy as np

from DefectClusterTools.util.constants import (kBoltzmann, heliumRadius,
                                               interstitialRadius,
                                               vacancyRadiusFactor,
                                               tungstenLatticeConstant)

# (diffusion factor in nm^2/s, migration energy in eV) of the mobile clusters
HELIUM_DIFFUSION = {
    1: (2.950e+10, 0.13),
    2: (3.240e+10, 0.20),
    3: (2.260e+10, 0.25),
    4: (1.680e+10, 0.20),
    5: (5.200e+09, 0.12),
    6: (3.360e+10, 0.30),
    7: (4.200e+10, 0.38),
}
VACANCY_DIFFUSION = {1: (1.800e+12, 1.30)}
INTERSTITIAL_DIFFUSION = {
    1: (8.800e+10, 0.01),
    2: (8.800e+10, 0.02),
    3: (8.800e+10, 0.03),
    4: (8.800e+10, 0.04),
    5: (8.800e+10, 0.05),
}


def get_default_formation_energy(composition: Tuple[int, int, int]) -> float:
    """
    Capillary-law estimate of the formation energy of a cluster.

    Args:
        composition (Tuple[int, int, int]): (nHe, nV, nI)

    Returns:
        float: The formation energy in eV
    """
    n_he, n_v, n_i = composition
    energy = 0.0
    if n_he > 0:
        energy += 6.15 * n_he**0.85
    if n_v > 0:
        energy += 3.60 * n_v**(2.0 / 3.0)
    if n_i > 0:
        energy += 10.0 * n_i**(2.0 / 3.0)
    if n_he > 0 and n_v > 0:
        # Helium is strongly trapped in vacancies
        energy -= 3.0 * np.sqrt(min(n_he, 4 * n_v) * n_v)
    return energy


def get_default_diffusion_parameters(
        composition: Tuple[int, int, int]) -> Tuple[float, float]:
    """
    Gets the diffusion factor and migration energy of a cluster. Only small
    single-species clusters are mobile.

    Returns:
        Tuple[float, float]: (diffusion factor in nm^2/s,
            migration energy in eV)
    """
    n_he, n_v, n_i = composition
    if n_v == 0 and n_i == 0:
        return HELIUM_DIFFUSION.get(n_he, (0.0, 0.0))
    if n_he == 0 and n_i == 0:
        return VACANCY_DIFFUSION.get(n_v, (0.0, 0.0))
    if n_he == 0 and n_v == 0:
        return INTERSTITIAL_DIFFUSION.get(n_i, (0.0, 0.0))
    return 0.0, 0.0


def get_reaction_radius(composition: Tuple[int, int, int]) -> float:
    """
    Gets the reaction radius of a cluster in nm. Mixed clusters with vacancies
    take the radius of their vacancy content.
    """
    n_he, n_v, n_i = composition
    if n_v > 0:
        return vacancyRadiusFactor * n_v**(1.0 / 3.0)
    if n_i > 0:
        return interstitialRadius + vacancyRadiusFactor * (n_i**(1.0 / 3.0) -
                                                           1.0)
    fourth = 0.25 * tungstenLatticeConstant
    return heliumRadius + fourth * (n_he**(1.0 / 3.0) - 1.0)


def get_diffusion_coefficient(diffusion_factor: float | np.ndarray,
                              migration_energy: float | np.ndarray,
                              temperature: float) -> float | np.ndarray:
    """
    Arrhenius diffusion coefficient D = D0 * exp(-Em / kT) in nm^2/s.
    """
    if temperature <= 0:
        raise ValueError(f'Invalid temperature {temperature} K')
    return diffusion_factor * np.exp(-migration_energy /
                                     (kBoltzmann * temperature))
