from typing import List, Sequence, Tuple

import numpy as np

from DefectClusterTools.reactants.cluster import (Cluster, HE, SPECIES,
                                                  HEV_TYPE, SUPER_TYPE,
                                                  get_cluster_type)


class SuperCluster(Cluster):
    """
    Aggregate of neighbouring mixed clusters represented by a few moments
    instead of one concentration per composition.

    The concentration of a member m is reconstructed from the average
    concentration l0 and the moments l_s of the selected axes (helium,
    vacancies) with a linear shape over the group:

        c_m = l0 + sum_s l_s * d_s(m),  d_s(m) = (n_s(m) - <n_s>) / var(n_s)

    Fluxes computed for the members are projected back onto (l0, l_s) with a
    Galerkin projection, dl/dt = G^-1 Phi^T f, where Phi holds the basis
    functions (1, d_s) of every member and G = Phi^T Phi. Axes along which
    the group has no extent are dropped from the basis, so a group with a
    single member evolves exactly like a concrete cluster and its moments
    stay constant.

    Args:
        members (Sequence[Sequence[int]]): The compositions represented by
            this super cluster. They must all be mixed helium-vacancy
            compositions.
        moment_axes (Sequence[int]): Positions in the composition tuple of
            the species carrying a moment, e.g. (0,) for helium only or
            (0, 1) for helium and vacancies.
    """

    def __init__(self,
                 members: Sequence[Sequence[int]],
                 moment_axes: Sequence[int] = (HE, )):
        members = sorted({tuple(int(n) for n in m) for m in members})
        if len(members) == 0:
            raise ValueError('A super cluster needs at least one member')
        for member in members:
            if get_cluster_type(member) != HEV_TYPE:
                raise ValueError(
                    f'Super cluster members must be HeV clusters: {member}')

        compositions = np.array(members, dtype=float)
        mean_composition = compositions.mean(axis=0)
        super().__init__(tuple(int(round(n)) for n in mean_composition),
                         diffusion_factor=0.0,
                         migration_energy=0.0)
        self.type_name = SUPER_TYPE

        self.members = members
        self.moment_axes = tuple(int(axis) for axis in moment_axes)
        self.mean_composition = mean_composition

        n_axes = len(self.moment_axes)
        self.dispersions = np.zeros(n_axes)
        self.distances = np.zeros((len(members), n_axes))
        for j, axis in enumerate(self.moment_axes):
            centered = compositions[:, axis] - mean_composition[axis]
            self.dispersions[j] = np.mean(centered**2)
            if self.dispersions[j] > 0:
                self.distances[:, j] = centered / self.dispersions[j]

        basis = np.hstack([np.ones((len(members), 1)), self.distances])
        active = [0] + [
            j + 1 for j in range(n_axes) if self.dispersions[j] > 0
        ]
        gram = basis[:, active].T @ basis[:, active]
        self.projection = np.zeros((n_axes + 1, len(members)))
        self.projection[active] = np.linalg.solve(gram, basis[:, active].T)

        self.moment_ids = [None] * n_axes

    @property
    def name(self) -> str:
        bounds = []
        for axis, symbol in enumerate(SPECIES):
            values = [m[axis] for m in self.members]
            if max(values) > 0:
                bounds.append(f'{symbol}_{min(values)}-{max(values)}')
        return 'Super_' + ''.join(bounds)

    @property
    def width(self) -> int:
        return len(self.members)

    @property
    def n_moments(self) -> int:
        return len(self.moment_axes)

    @property
    def is_mobile(self) -> bool:
        return False

    def get_member_reconstruction(self,
                                  member_index: int) -> List[Tuple[int, float]]:
        """
        Gets the linear combination of degrees of freedom (0-based index,
        coefficient) giving the concentration of one member.
        """
        coefficients = [(self.id - 1, 1.0)]
        for j, moment_id in enumerate(self.moment_ids):
            distance = self.distances[member_index, j]
            if distance != 0:
                coefficients.append((moment_id - 1, float(distance)))
        return coefficients

    def get_member_projection(self,
                              member_index: int) -> List[Tuple[int, float]]:
        """
        Gets how a flux of one member is distributed over the degrees of
        freedom (0-based index, coefficient).
        """
        dof_ids = [self.id] + list(self.moment_ids)
        return [(dof_id - 1, float(weight))
                for dof_id, weight in zip(dof_ids,
                                          self.projection[:, member_index])
                if weight != 0]

    def get_moment(self, moment: int = 0) -> float:
        return self._get_network().get_concentration(self.moment_ids[moment])

    def get_member_concentration(self, member_index: int) -> float:
        network = self._get_network()
        return sum(
            coefficient * network.get_concentration(index + 1)
            for index, coefficient in self.get_member_reconstruction(
                member_index))

    def get_total_concentration(self) -> float:
        """
        Sum of the reconstructed member concentrations. Under the linear
        closure this is the width of the group times the average
        concentration.
        """
        total = self.width * self.concentration
        for j in range(self.n_moments):
            total += self.get_moment(j) * self.distances[:, j].sum()
        return total

    def get_moment_flux(self, moment: int = 0) -> float:
        return self._get_network().get_total_flux(self.moment_ids[moment])

    def get_moment_partial_derivatives(self,
                                       partials: np.ndarray,
                                       moment: int = 0) -> np.ndarray:
        return self._get_network().get_partial_derivatives(
            self.moment_ids[moment], partials)
