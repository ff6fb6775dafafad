"""
Checkpoint file of a 1D simulation.

Layout:
    headerGroup                 attrs nx, hx
    networkGroup/network        rows (nHe, nV, nI, formation energy,
                                migration energy, diffusion factor), the
                                network properties are attributes of
                                networkGroup
    concentrationsGroup         attr lastTimeStep
        concentration_<ts>      attrs absoluteTime, iSurface
            <xi>                rows (dof index, value) of grid point xi
"""
from typing import Dict, Optional, Tuple

import h5py
import numpy as np

from DefectClusterTools.reactants.cluster import Cluster
from DefectClusterTools.reactants.network import ReactionNetwork


def write_header(file: h5py.File, nx: int, hx: float) -> None:
    header = file.require_group('headerGroup')
    header.attrs['nx'] = nx
    header.attrs['hx'] = hx


def read_header(file: h5py.File) -> Tuple[int, float]:
    header = file['headerGroup']
    return int(header.attrs['nx']), float(header.attrs['hx'])


def write_network(file: h5py.File, network: ReactionNetwork) -> None:
    group = file.require_group('networkGroup')
    if 'network' in group:
        del group['network']
    data = np.array([[
        *cluster.composition, cluster.formation_energy,
        cluster.migration_energy, cluster.diffusion_factor
    ] for cluster in network.clusters]).reshape(-1, 6)
    group.create_dataset('network', data=data)
    for key, value in network.properties.items():
        group.attrs[key] = str(value)


def read_network(file: h5py.File,
                 properties: Optional[Dict[str, str]] = None,
                 initialize: bool = True) -> ReactionNetwork:
    """
    Builds a network from the clusters stored in a file.

    Args:
        file (h5py.File): The network file
        properties (Dict[str, str], None): Properties overriding the stored
            ones
        initialize (bool): Whether to call reinitialize_connectivities()
    """
    group = file['networkGroup']
    clusters = [
        Cluster(row[:3].astype(int),
                formation_energy=row[3],
                migration_energy=row[4],
                diffusion_factor=row[5]) for row in group['network'][()]
    ]
    network_properties = {
        key: str(value)
        for key, value in group.attrs.items()
    }
    if properties is not None:
        network_properties.update(properties)

    network = ReactionNetwork(clusters, network_properties)
    if initialize:
        network.reinitialize_connectivities()
    return network


def add_concentration_timestep(file: h5py.File, timestep: int, time: float,
                               surface_position: int,
                               concs: np.ndarray) -> None:
    """
    Stores the non-zero concentrations of every grid point.

    Args:
        concs (np.ndarray): Concentrations indexed by [grid point, dof]
    """
    concentrations = file.require_group('concentrationsGroup')
    name = f'concentration_{timestep}'
    if name in concentrations:
        del concentrations[name]
    group = concentrations.create_group(name)
    group.attrs['absoluteTime'] = time
    group.attrs['iSurface'] = surface_position
    for xi, values in enumerate(np.asarray(concs)):
        indices = np.flatnonzero(values)
        group.create_dataset(str(xi),
                             data=np.column_stack([indices, values[indices]
                                                   ]).reshape(-1, 2))
    concentrations.attrs['lastTimeStep'] = timestep


def has_concentration_group(file: h5py.File) -> bool:
    if 'concentrationsGroup' not in file:
        return False
    return file['concentrationsGroup'].attrs.get('lastTimeStep', -1) >= 0


def _get_timestep_group(file: h5py.File,
                        timestep: Optional[int] = None) -> h5py.Group:
    concentrations = file['concentrationsGroup']
    if timestep is None:
        timestep = int(concentrations.attrs['lastTimeStep'])
    return concentrations[f'concentration_{timestep}']


def read_surface_1d(file: h5py.File, timestep: Optional[int] = None) -> int:
    return int(_get_timestep_group(file, timestep).attrs['iSurface'])


def read_time(file: h5py.File, timestep: Optional[int] = None) -> float:
    return float(_get_timestep_group(file, timestep).attrs['absoluteTime'])


def read_grid_point(file: h5py.File,
                    xi: int,
                    timestep: Optional[int] = None) -> np.ndarray:
    """
    Gets the (dof index, value) rows stored for one grid point. The last
    stored timestep is used by default.
    """
    group = _get_timestep_group(file, timestep)
    if str(xi) not in group:
        return np.zeros((0, 2))
    return group[str(xi)][()]
