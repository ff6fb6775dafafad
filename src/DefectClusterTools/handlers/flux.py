import warnings
from abc import abstractmethod
from typing import List, Sequence, Tuple

import numpy as np

from DefectClusterTools.handlers.base import ProcessHandler, PartialEntry


def read_time_profile(filename: str) -> Tuple[List[float], List[float]]:
    """
    Reads a two-column (time, value) text file.
    """
    data = np.loadtxt(filename, ndmin=2)
    if data.shape[1] != 2:
        raise ValueError(f'{filename} must have exactly two columns')
    return data[:, 0].tolist(), data[:, 1].tolist()


class FluxHandler(ProcessHandler):
    """
    Implantation of helium at the surface.

    The depth profile is given by fit_function() and normalized over the
    interior points of the grid so that the integrated flux equals the
    amplitude:

        sum_i flux_i * (x_i - x_{i-1}) = amplitude

    Args:
        amplitude (float): Incident flux in He/nm^2/s
        time_profile (Sequence[Sequence[float]], None): Optional (times,
            amplitudes) used instead of the constant amplitude. The amplitude
            is linearly interpolated and held constant outside of the
            profile.
    """

    def __init__(self,
                 amplitude: float = 1.0,
                 time_profile: Sequence[Sequence[float]] | None = None):
        self.amplitude = amplitude
        self.time_profile = time_profile
        self.flux_index = None
        self.incident_flux_vec = None

    @classmethod
    def from_file(cls, filename: str, **kwargs):
        return cls(time_profile=read_time_profile(filename), **kwargs)

    @abstractmethod
    def fit_function(self, x: np.ndarray) -> np.ndarray:
        """
        Unnormalized implantation profile at depth x (nm).
        """
        raise NotImplementedError

    def get_flux_amplitude(self, time: float) -> float:
        if self.time_profile is None:
            return self.amplitude
        times, values = self.time_profile
        return float(np.interp(time, times, values))

    def compute_incident_flux_profile(self, grid: Sequence[float],
                                      surface_position: int) -> np.ndarray:
        """
        Normalized flux at every grid point for an amplitude of 1.
        The surface, the points in front of it and the last point get no flux.
        """
        grid = np.asarray(grid, dtype=float)
        profile = np.zeros(len(grid))
        interior = np.arange(surface_position + 1, len(grid) - 1)
        if len(interior) == 0:
            return profile

        fit = self.fit_function(grid[interior] - grid[surface_position])
        normalization = np.sum(fit * (grid[interior] - grid[interior - 1]))
        if normalization <= 0:
            raise ValueError('The implantation profile vanishes on the grid')
        profile[interior] = fit / normalization
        return profile

    def get_incident_flux_vec(self, time: float, grid: Sequence[float],
                              surface_position: int) -> np.ndarray:
        return self.get_flux_amplitude(time) * \
            self.compute_incident_flux_profile(grid, surface_position)

    def _initialize(self, network, grid, surface_position):
        cluster = network.get('He', 1)
        if cluster is None:
            warnings.warn('The network has no single helium, the incident '
                          'flux is disabled')
            self.flux_index = None
        else:
            self.flux_index = cluster.id - 1
        self.incident_flux_vec = self.compute_incident_flux_profile(
            grid, surface_position)

    def compute_contribution(self,
                             network,
                             concs,
                             updated_conc,
                             grid,
                             xi,
                             time=0.0):
        self.check_generation(network)
        if self.flux_index is None:
            return
        updated_conc[xi, self.flux_index] += self.get_flux_amplitude(
            time) * self.incident_flux_vec[xi]

    def compute_partials(self, network, grid, xi,
                         time=0.0) -> List[PartialEntry]:
        self.check_generation(network)
        return []


class W221FitFluxHandler(FluxHandler):
    """
    Helium implanted in W(221). The fitted profile is a parabola which
    vanishes beyond 6.1 nm.
    """
    fit_coefficients = (0.661661, -0.2033923, 0.0155638)
    max_depth = 6.1

    def fit_function(self, x):
        x = np.asarray(x, dtype=float)
        a, b, c = self.fit_coefficients
        value = np.maximum(a + b * x + c * x**2, 0.0)
        return np.where(x > self.max_depth, 0.0, value)


class UniformFitFluxHandler(FluxHandler):
    """
    Flux spread uniformly over the whole material.
    """

    def fit_function(self, x):
        return np.ones_like(np.asarray(x, dtype=float))
