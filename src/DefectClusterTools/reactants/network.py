import logging
import math
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from monty.json import MSONable
from scipy import sparse

from DefectClusterTools.reactants.cluster import (Cluster, HE, V, I, SPECIES,
                                                  HE_TYPE, V_TYPE, I_TYPE,
                                                  HEV_TYPE, HEI_TYPE,
                                                  SINGLE_SPECIES_TYPES,
                                                  get_cluster_type)
from DefectClusterTools.reactants.super_cluster import SuperCluster
from DefectClusterTools.reactants.physics import (get_diffusion_coefficient,
                                                  get_reaction_radius,
                                                  get_default_formation_energy)
from DefectClusterTools.util.constants import kBoltzmann, atomicDensity

DEFAULT_PROPERTIES = {
    'dissociationsEnabled': 'true',
    'groupingMin': '-1',
    'groupingWidthA': '1',
    'groupingWidthB': '1',
    'numMoments': '1',
}

MAX_SIZE_PROPERTIES = {
    HE_TYPE: 'maxHeClusterSize',
    V_TYPE: 'maxVClusterSize',
    I_TYPE: 'maxIClusterSize',
    HEV_TYPE: 'maxMixedClusterSize',
    HEI_TYPE: 'maxMixedClusterSize',
}

CLUSTERING = 'clustering'
RECOMBINATION = 'recombination'


def find_reaction(first: Tuple[int, int, int], second: Tuple[int, int, int]):
    """
    Applies the composition arithmetic of the network to a pair of
    compositions.

    Returns:
        (str, tuple | None) | None: The kind of reaction and the composition
            of the product (None for an annihilation), or None when the pair
            does not react.
    """
    first_type = get_cluster_type(first)
    second_type = get_cluster_type(second)
    if first_type == second_type and first_type in SINGLE_SPECIES_TYPES:
        return CLUSTERING, tuple(a + b for a, b in zip(first, second))

    by_type = {first_type: first, second_type: second}
    if first_type == second_type or len(by_type) != 2:
        return None

    if V_TYPE in by_type and I_TYPE in by_type:
        excess = by_type[V_TYPE][V] - by_type[I_TYPE][I]
        if excess > 0:
            return RECOMBINATION, (0, excess, 0)
        if excess < 0:
            return RECOMBINATION, (0, 0, -excess)
        return RECOMBINATION, None
    if HE_TYPE in by_type and V_TYPE in by_type:
        return CLUSTERING, (by_type[HE_TYPE][HE], by_type[V_TYPE][V], 0)
    if HE_TYPE in by_type and I_TYPE in by_type:
        return CLUSTERING, (by_type[HE_TYPE][HE], 0, by_type[I_TYPE][I])
    if HEI_TYPE in by_type:
        n_he, _, n_i = by_type[HEI_TYPE]
        if HE_TYPE in by_type:
            return CLUSTERING, (n_he + by_type[HE_TYPE][HE], 0, n_i)
        if I_TYPE in by_type:
            if by_type[I_TYPE][I] != 1:
                return None
            return CLUSTERING, (n_he, 0, n_i + 1)
        if V_TYPE in by_type:
            # The helium is left in the remaining interstitials
            n_v = by_type[V_TYPE][V]
            if n_v >= n_i:
                return None
            return RECOMBINATION, (n_he, 0, n_i - n_v)
    if HEV_TYPE in by_type:
        n_he, n_v, _ = by_type[HEV_TYPE]
        if HE_TYPE in by_type:
            return CLUSTERING, (n_he + by_type[HE_TYPE][HE], n_v, 0)
        if V_TYPE in by_type:
            # Mixed clusters only absorb single vacancies
            if by_type[V_TYPE][V] != 1:
                return None
            return CLUSTERING, (n_he, n_v + 1, 0)
        if I_TYPE in by_type:
            n_i = by_type[I_TYPE][I]
            if n_v < n_i:
                return None
            return RECOMBINATION, (n_he, n_v - n_i, 0)
    return None


class ReactionNetwork(MSONable):
    """
    Registry of the clusters of a simulation and of the reactions between
    them.

    The network owns its clusters. Once all the clusters are added,
    reinitialize_connectivities() groups the large mixed clusters into super
    clusters, assigns the dense ids and the moment slots, discovers the
    reactions and builds the sparse structure of the Jacobian. Afterwards the
    network is reused for every grid point: ingest_local_state() loads the
    degrees of freedom of one point and the flux and derivative queries are
    answered from that state only.

    Internally every tracked composition (concrete cluster or member of a
    super cluster) is a slot. The slot concentrations are a linear map R of
    the degrees of freedom, and slot fluxes are distributed back onto the
    degrees of freedom by a linear map P, so that the reaction fluxes and the
    Jacobian are

        F = P f(R x),  J = P (df/dc) R

    Args:
        clusters (Sequence[Cluster], None): The clusters, in construction
            order.
        properties (Dict[str, str], None): String keyed configuration such as
            'maxVClusterSize' or 'dissociationsEnabled'.
    """

    def __init__(self,
                 clusters: Optional[Sequence[Cluster]] = None,
                 properties: Optional[Dict[str, str]] = None):
        self.properties = dict(DEFAULT_PROPERTIES)
        if properties is not None:
            self.properties.update(
                {key: str(value)
                 for key, value in properties.items()})

        self._all_clusters = []
        self._compositions = {}
        self.temperature = None
        self.generation = 0
        self._initialized = False
        self._clear_connectivity()

        for cluster in clusters or []:
            self.add(cluster)

    @property
    def clusters(self) -> List[Cluster]:
        """
        All the clusters added to the network, in construction order,
        including the ones represented by super clusters.
        """
        return list(self._all_clusters)

    def add(self, cluster: Cluster) -> None:
        """
        Adds a cluster. This invalidates the ids and the connectivity until
        the next call to reinitialize_connectivities().
        """
        if isinstance(cluster, SuperCluster):
            raise ValueError('Super clusters are created by the network')
        if cluster.composition in self._compositions:
            raise ValueError(f'{cluster.name} is already in the network')
        self._all_clusters.append(cluster)
        self._compositions[cluster.composition] = cluster
        cluster.set_reaction_network(self)
        if self.temperature is not None:
            cluster.set_temperature(self.temperature)
        self._clear_connectivity()

    def _clear_connectivity(self) -> None:
        if self._initialized:
            for cluster in self._all_clusters:
                cluster.id = None
        self._initialized = False
        self._clusters = []
        self._super_clusters = []
        self._by_id = []
        self._lookup = {}
        self._members = {}
        self._partners = []
        self._dfill_map = []
        self._dof = 0
        self._state = None
        self._fluxes = None
        self._jacobian = None

    def _int_property(self, key: str) -> Optional[int]:
        if key not in self.properties:
            return None
        try:
            return int(self.properties[key])
        except ValueError as e:
            raise ValueError(f'Property {key} must be an integer, '
                             f'got {self.properties[key]!r}') from e

    def _bool_property(self, key: str) -> bool:
        return self.properties.get(key, 'false').strip().lower() in ('true',
                                                                      '1',
                                                                      'yes')

    @property
    def n_moments(self) -> int:
        return self._int_property('numMoments')

    def _check_properties(self) -> None:
        for cluster in self._all_clusters:
            key = MAX_SIZE_PROPERTIES[cluster.type_name]
            max_size = self._int_property(key)
            if max_size is not None and cluster.size > max_size:
                raise ValueError(
                    f'{cluster.name} is larger than {key}={max_size}')

        if self.n_moments not in (1, 2):
            raise ValueError('numMoments must be 1 or 2')
        width_a = self._int_property('groupingWidthA')
        width_b = self._int_property('groupingWidthB')
        if width_a < 1 or width_b < 1:
            raise ValueError('Grouping widths must be at least 1')
        if self.n_moments == 1 and width_b != 1:
            raise ValueError('Grouping along vacancies (groupingWidthB > 1) '
                             'requires numMoments=2')

    def _group_super_clusters(self) -> None:
        grouping_min = self._int_property('groupingMin')
        width_a = self._int_property('groupingWidthA')
        width_b = self._int_property('groupingWidthB')
        moment_axes = (HE, ) if self.n_moments == 1 else (HE, V)

        blocks = {}
        for cluster in self._all_clusters:
            n_he, n_v, _ = cluster.composition
            if (grouping_min > 0 and cluster.type_name == HEV_TYPE
                    and n_v >= grouping_min):
                key = ((n_he - 1) // width_a, (n_v - grouping_min) // width_b)
                blocks.setdefault(key, []).append(cluster.composition)
                cluster.id = None
            else:
                self._clusters.append(cluster)
                self._lookup[cluster.composition] = cluster

        for key in sorted(blocks):
            super_cluster = SuperCluster(blocks[key], moment_axes)
            super_cluster.set_reaction_network(self)
            if self.temperature is not None:
                super_cluster.set_temperature(self.temperature)
            for member_index, member in enumerate(super_cluster.members):
                self._members[member] = (super_cluster, member_index)
            self._super_clusters.append(super_cluster)

    def _assign_ids(self) -> None:
        self._by_id = self._clusters + self._super_clusters
        for i, cluster in enumerate(self._by_id):
            cluster.id = i + 1

        n_super = len(self._super_clusters)
        for super_cluster in self._super_clusters:
            super_cluster.moment_ids = [
                super_cluster.id + n_super * (m + 1)
                for m in range(self.n_moments)
            ]
        self._dof = len(self._by_id)
        if n_super > 0:
            self._dof += n_super * self.n_moments

    def _build_slots(self) -> None:
        compositions = []
        owners = []
        radii = []
        formation_energies = []
        diffusion_factors = []
        migration_energies = []
        reconstruction = ([], [], [])
        projection = ([], [], [])

        def add_entries(entries, k, coefficients, transpose):
            for index, coefficient in coefficients:
                entries[0].append(index if transpose else k)
                entries[1].append(k if transpose else index)
                entries[2].append(coefficient)

        for cluster in self._clusters:
            k = len(compositions)
            compositions.append(cluster.composition)
            owners.append(cluster.id)
            radii.append(cluster.reaction_radius)
            formation_energies.append(cluster.formation_energy)
            diffusion_factors.append(cluster.diffusion_factor)
            migration_energies.append(cluster.migration_energy)
            add_entries(reconstruction, k, [(cluster.id - 1, 1.0)], False)
            add_entries(projection, k, [(cluster.id - 1, 1.0)], True)

        for super_cluster in self._super_clusters:
            for member_index, member in enumerate(super_cluster.members):
                k = len(compositions)
                compositions.append(member)
                owners.append(super_cluster.id)
                radii.append(get_reaction_radius(member))
                formation_energies.append(get_default_formation_energy(member))
                diffusion_factors.append(0.0)
                migration_energies.append(0.0)
                add_entries(
                    reconstruction, k,
                    super_cluster.get_member_reconstruction(member_index),
                    False)
                add_entries(projection, k,
                            super_cluster.get_member_projection(member_index),
                            True)

        n_slots = len(compositions)
        self._slot_compositions = compositions
        self._slot_index = {
            composition: k
            for k, composition in enumerate(compositions)
        }
        self._slot_types = [get_cluster_type(c) for c in compositions]
        self._slot_owners = np.array(owners, dtype=int)
        self._slot_radii = np.array(radii)
        self._slot_formation_energies = np.array(formation_energies)
        self._slot_diffusion_factors = np.array(diffusion_factors)
        self._slot_migration_energies = np.array(migration_energies)
        self._reconstruction = sparse.csr_matrix(
            (reconstruction[2], (reconstruction[0], reconstruction[1])),
            shape=(n_slots, self._dof))
        self._projection = sparse.csr_matrix(
            (projection[2], (projection[0], projection[1])),
            shape=(self._dof, n_slots))

    def _discover_reactions(self) -> None:
        n_slots = len(self._slot_compositions)
        simple_slots = [
            k for k, slot_type in enumerate(self._slot_types)
            if slot_type in SINGLE_SPECIES_TYPES
        ]

        first, second, products = [], [], []
        clustering = []
        for k in simple_slots:
            for other in range(n_slots):
                if (self._slot_types[other] in SINGLE_SPECIES_TYPES
                        and other < k):
                    # Already found from the other side
                    continue
                reaction = find_reaction(self._slot_compositions[k],
                                         self._slot_compositions[other])
                if reaction is None:
                    continue
                kind, product = reaction
                if product is None:
                    product_index = -1
                elif product in self._slot_index:
                    product_index = self._slot_index[product]
                else:
                    continue
                first.append(k)
                second.append(other)
                products.append(product_index)
                clustering.append(kind == CLUSTERING)

        self._production = (np.array(first, dtype=int),
                            np.array(second, dtype=int),
                            np.array(products, dtype=int))

        dissociating, emitted, remaining = [], [], []
        if self._bool_property('dissociationsEnabled'):
            for a, b, c, is_clustering in zip(first, second, products,
                                              clustering):
                if not is_clustering or c < 0:
                    continue
                if (sum(self._slot_compositions[a]) == 1
                        or sum(self._slot_compositions[b]) == 1):
                    dissociating.append(c)
                    emitted.append(a)
                    remaining.append(b)
        self._dissociation = (np.array(dissociating, dtype=int),
                              np.array(emitted, dtype=int),
                              np.array(remaining, dtype=int))

    def _jacobian_indices(self) -> Tuple[np.ndarray, np.ndarray]:
        a, b, c = self._production
        valid = c >= 0
        dc, da, db = self._dissociation
        rows = np.concatenate([a, a, b, b, c[valid], c[valid], dc, da, db])
        cols = np.concatenate(
            [a, b, a, b, a[valid], b[valid], dc, dc, dc])
        return rows, cols

    def _build_connectivity(self) -> None:
        owners = self._slot_owners
        self._partners = [set() for _ in self._by_id]
        a, b, _ = self._production
        for owner_a, owner_b in zip(owners[a], owners[b]):
            self._partners[owner_a - 1].add(owner_b)
            self._partners[owner_b - 1].add(owner_a)
        dc, da, db = self._dissociation
        for owner_c, owner_a, owner_b in zip(owners[dc], owners[da],
                                             owners[db]):
            self._partners[owner_c - 1].update((owner_a, owner_b))
            self._partners[owner_a - 1].add(owner_c)
            self._partners[owner_b - 1].add(owner_c)

        n_slots = len(self._slot_compositions)
        self._jacobian_rows, self._jacobian_cols = self._jacobian_indices()
        slot_structure = sparse.csr_matrix(
            (np.ones(len(self._jacobian_rows)),
             (self._jacobian_rows, self._jacobian_cols)),
            shape=(n_slots, n_slots))
        structure = (abs(self._projection) @ slot_structure @ abs(
            self._reconstruction) + sparse.identity(self._dof)).tocsr()
        structure.sort_indices()
        self._dfill_map = [
            structure.indices[structure.indptr[i]:structure.indptr[i + 1]].copy()
            for i in range(self._dof)
        ]

    def _compute_rate_constants(self) -> None:
        kT = kBoltzmann * self.temperature
        diffusion = get_diffusion_coefficient(self._slot_diffusion_factors,
                                              self._slot_migration_energies,
                                              self.temperature)
        radii = self._slot_radii

        a, b, _ = self._production
        self._production_rates = 4.0 * math.pi * (radii[a] + radii[b]) * (
            diffusion[a] + diffusion[b])

        dc, da, db = self._dissociation
        binding_energies = (self._slot_formation_energies[da] +
                            self._slot_formation_energies[db] -
                            self._slot_formation_energies[dc])
        self._dissociation_rates = atomicDensity * 4.0 * math.pi * (
            radii[da] + radii[db]) * (diffusion[da] + diffusion[db]) * np.exp(
                -np.maximum(binding_energies, 0.0) / kT)

    def reinitialize_connectivities(self) -> None:
        """
        Regroups the super clusters, reassigns the ids, rediscovers every
        reaction and rebuilds the derivative column map. Any previously
        ingested state and every handler index table become stale.
        """
        self._clear_connectivity()
        self._check_properties()
        self._group_super_clusters()
        self._assign_ids()
        self._build_slots()
        self._discover_reactions()
        self._build_connectivity()
        self._initialized = True
        self.generation += 1
        if self.temperature is not None:
            self._compute_rate_constants()

        logging.info(
            f'Reaction network: {len(self._clusters)} clusters, '
            f'{len(self._super_clusters)} super clusters, {self._dof} degrees '
            f'of freedom, {len(self._production[0])} production and '
            f'{len(self._dissociation[0])} dissociation reactions')

    def set_temperature(self, temperature: float) -> bool:
        """
        Recomputes the diffusion coefficients and the rate constants if the
        temperature changed. The change test is an exact comparison.

        Returns:
            bool: Whether the rates were recomputed
        """
        if self.temperature is not None and temperature == self.temperature:
            return False
        self.temperature = temperature
        for cluster in self._all_clusters + self._super_clusters:
            cluster.set_temperature(temperature)
        if self._initialized:
            self._compute_rate_constants()
        self._fluxes = None
        self._jacobian = None
        return True

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError('The network connectivity must be '
                               'initialized with reinitialize_connectivities()')

    def ingest_local_state(self, values: np.ndarray) -> None:
        """
        Loads the degrees of freedom of one grid point. Every flux and
        derivative query refers to the last ingested state.

        Args:
            values (np.ndarray): The dof values, indexed by id - 1.
        """
        self._require_initialized()
        values = np.array(values, dtype=float)
        if values.shape != (self._dof, ):
            raise ValueError(f'Expected {self._dof} degrees of freedom, '
                             f'received an array of shape {values.shape}')
        self._state = values
        self._slot_concentrations = self._reconstruction @ values
        self._fluxes = None
        self._jacobian = None

    def _require_state(self) -> None:
        self._require_initialized()
        if self._state is None:
            raise RuntimeError('No concentrations were ingested since the '
                               'connectivity was last initialized')
        if self.temperature is None:
            raise RuntimeError('The network temperature is not set')

    def get_concentration(self, cluster_id: int) -> float:
        self._require_state()
        return float(self._state[cluster_id - 1])

    def _get_fluxes(self) -> np.ndarray:
        self._require_state()
        if self._fluxes is None:
            conc = self._slot_concentrations
            slot_fluxes = np.zeros(len(conc))

            a, b, c = self._production
            rates = self._production_rates * conc[a] * conc[b]
            np.add.at(slot_fluxes, a, -rates)
            np.add.at(slot_fluxes, b, -rates)
            valid = c >= 0
            np.add.at(slot_fluxes, c[valid], rates[valid])

            dc, da, db = self._dissociation
            rates = self._dissociation_rates * conc[dc]
            np.add.at(slot_fluxes, dc, -rates)
            np.add.at(slot_fluxes, da, rates)
            np.add.at(slot_fluxes, db, rates)

            self._fluxes = self._projection @ slot_fluxes
        return self._fluxes

    def _get_jacobian(self) -> sparse.csr_matrix:
        self._require_state()
        if self._jacobian is None:
            conc = self._slot_concentrations
            a, b, c = self._production
            valid = c >= 0
            d_first = self._production_rates * conc[b]
            d_second = self._production_rates * conc[a]
            d_dissociation = self._dissociation_rates
            values = np.concatenate([
                -d_first, -d_second, -d_first, -d_second, d_first[valid],
                d_second[valid], -d_dissociation, d_dissociation,
                d_dissociation
            ])
            n_slots = len(conc)
            slot_jacobian = sparse.csr_matrix(
                (values, (self._jacobian_rows, self._jacobian_cols)),
                shape=(n_slots, n_slots))
            self._jacobian = (self._projection @ slot_jacobian
                              @ self._reconstruction).tocsr()
        return self._jacobian

    def get_total_flux(self, cluster_id: int) -> float:
        """
        Net rate of change of one degree of freedom from all the reactions,
        at the state last ingested.
        """
        return float(self._get_fluxes()[cluster_id - 1])

    def get_partial_derivatives(self, cluster_id: int,
                                partials: np.ndarray) -> np.ndarray:
        """
        Adds the partial derivatives of get_total_flux(cluster_id) with
        respect to every degree of freedom into partials, a dense buffer of
        size dof. The caller must reset the entries it consumed (those listed
        in dfill_map[cluster_id - 1]) before the next call.
        """
        jacobian = self._get_jacobian()
        row = cluster_id - 1
        start, end = jacobian.indptr[row], jacobian.indptr[row + 1]
        np.add.at(partials, jacobian.indices[start:end],
                  jacobian.data[start:end])
        return partials

    def get_moment_flux(self, super_id: int, moment: int = 0) -> float:
        super_cluster = self._by_id[super_id - 1]
        return self.get_total_flux(super_cluster.moment_ids[moment])

    def get_moment_partial_derivatives(self,
                                       super_id: int,
                                       partials: np.ndarray,
                                       moment: int = 0) -> np.ndarray:
        super_cluster = self._by_id[super_id - 1]
        return self.get_partial_derivatives(super_cluster.moment_ids[moment],
                                            partials)

    def compute_fluxes(self, values: np.ndarray) -> np.ndarray:
        """
        Ingests values and returns the reaction flux of every degree of
        freedom.
        """
        self.ingest_local_state(values)
        return self._get_fluxes().copy()

    def compute_partials(self, values: np.ndarray) -> sparse.csr_matrix:
        """
        Ingests values and returns the reaction Jacobian (dof x dof).
        """
        self.ingest_local_state(values)
        return self._get_jacobian().copy()

    def size(self) -> int:
        """
        Number of clusters and super clusters, excluding the moment slots.
        """
        return len(self._by_id)

    @property
    def dof(self) -> int:
        """
        Number of degrees of freedom per grid point.
        """
        return self._dof

    @property
    def dfill_map(self) -> List[np.ndarray]:
        """
        For every degree of freedom (0-based), the sorted 0-based indices of
        the degrees of freedom its reaction flux depends on.
        """
        self._require_initialized()
        return self._dfill_map

    @property
    def n_reactions(self) -> int:
        return len(self._production[0]) + len(self._dissociation[0])

    def get_all(self, type_name: Optional[str] = None) -> List[Cluster]:
        """
        Gets the clusters of the network in id order, optionally only the
        ones of one type ('He', 'V', 'I', 'HeV', 'HeI' or 'Super').
        Before the connectivity is initialized, all the clusters are returned
        in construction order.
        """
        clusters = self._by_id if self._initialized else self._all_clusters
        if type_name is None:
            return list(clusters)
        return [c for c in clusters if c.type_name == type_name]

    def get(self, species: str, size: int) -> Optional[Cluster]:
        """
        Gets the single-species cluster of a given size.

        Args:
            species (str): 'He', 'V' or 'I'
            size (int): The number of defects

        Returns:
            Cluster | None: The cluster, or None if it is not tracked
        """
        if species not in SPECIES:
            raise ValueError(f'Unknown species {species}')
        if size < 1:
            return None
        composition = [0, 0, 0]
        composition[SPECIES.index(species)] = size
        return self.get_by_composition(tuple(composition))

    def get_by_composition(self,
                           composition: Sequence[int]) -> Optional[Cluster]:
        """
        Gets the cluster tracking a composition: the concrete cluster, the
        super cluster it is grouped in, or None.
        """
        composition = tuple(composition)
        if not self._initialized:
            return self._compositions.get(composition)
        if composition in self._lookup:
            return self._lookup[composition]
        if composition in self._members:
            return self._members[composition][0]
        return None

    def get_projection(
            self, composition: Sequence[int]) -> Optional[List[Tuple[int, float]]]:
        """
        Gets how a production of the given composition is distributed over the
        degrees of freedom, as (0-based index, coefficient) pairs, or None if
        the composition is not tracked.
        """
        self._require_initialized()
        composition = tuple(composition)
        if composition in self._lookup:
            return [(self._lookup[composition].id - 1, 1.0)]
        if composition in self._members:
            super_cluster, member_index = self._members[composition]
            return super_cluster.get_member_projection(member_index)
        return None

    def get_connectivity(self, cluster_id: int) -> List[int]:
        """
        0/1 list over the cluster ids (1..size()) with a 1 for every reaction
        partner of the given cluster.
        """
        self._require_initialized()
        connectivity = [0] * len(self._by_id)
        for partner in self._partners[cluster_id - 1]:
            connectivity[partner - 1] = 1
        return connectivity

    def get_biggest_rate(self) -> float:
        """
        Largest reaction rate constant at the current temperature.
        """
        self._require_initialized()
        if self.temperature is None:
            return 0.0
        rates = np.concatenate(
            [self._production_rates, self._dissociation_rates])
        if len(rates) == 0:
            return 0.0
        return float(rates.max())
