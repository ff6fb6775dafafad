from DefectClusterTools.reactants import (SuperCluster,
                                          get_simple_reaction_network)

import numpy as np
import pytest


def test_projection():
    super_cluster = SuperCluster([(3, 5, 0), (1, 5, 0), (2, 5, 0)])
    assert super_cluster.members == [(1, 5, 0), (2, 5, 0), (3, 5, 0)]
    assert super_cluster.composition == (2, 5, 0)
    assert super_cluster.type_name == 'Super'
    assert super_cluster.name == 'Super_He_1-3V_5-5'
    assert super_cluster.width == 3
    assert not super_cluster.is_mobile
    assert np.allclose(super_cluster.distances[:, 0], [-1.5, 0.0, 1.5])

    basis = np.hstack([np.ones((3, 1)), super_cluster.distances])
    assert np.allclose(super_cluster.projection @ basis, np.eye(2))

    super_cluster = SuperCluster([(1, 5, 0), (2, 5, 0), (1, 6, 0), (2, 6, 0)],
                                 moment_axes=(0, 1))
    assert super_cluster.n_moments == 2
    basis = np.hstack([np.ones((4, 1)), super_cluster.distances])
    assert np.allclose(super_cluster.projection @ basis, np.eye(3))


def test_degenerate_axis():
    super_cluster = SuperCluster([(1, 5, 0), (2, 5, 0)], moment_axes=(0, 1))
    assert super_cluster.dispersions[1] == 0
    assert np.allclose(super_cluster.distances[:, 1], 0.0)
    assert np.allclose(super_cluster.projection[2], 0.0)
    basis = np.hstack([np.ones((2, 1)), super_cluster.distances[:, :1]])
    assert np.allclose(super_cluster.projection[:2] @ basis, np.eye(2))

    super_cluster = SuperCluster([(4, 9, 0)])
    assert np.allclose(super_cluster.projection, [[1.0], [0.0]])


def test_invalid_members():
    with pytest.raises(ValueError):
        SuperCluster([])
    with pytest.raises(ValueError):
        SuperCluster([(0, 5, 0)])


def test_ids_and_closure():
    network = get_simple_reaction_network(properties={
        'groupingMin': '5',
        'groupingWidthA': '3'
    })
    super_clusters = network.get_all('Super')
    assert len(super_clusters) == 7
    assert network.size() == 67
    assert network.dof == 74
    assert len(network.get_all('HeV')) == 30

    # Super clusters follow the concrete clusters, then come the moments
    assert [s.id for s in super_clusters] == list(range(61, 68))
    for super_cluster in super_clusters:
        assert super_cluster.moment_ids == [super_cluster.id + 7]

    super_cluster = network.get_by_composition((2, 5, 0))
    assert super_cluster is network.get_by_composition((3, 5, 0))
    assert super_cluster.members == [(1, 5, 0), (2, 5, 0), (3, 5, 0)]

    network.set_temperature(1000.0)
    values = np.zeros(network.dof)
    values[super_cluster.id - 1] = 2.0
    values[super_cluster.moment_ids[0] - 1] = 0.5
    network.ingest_local_state(values)
    assert super_cluster.concentration == 2.0
    assert super_cluster.get_moment() == 0.5
    assert super_cluster.get_member_concentration(0) == pytest.approx(1.25)
    assert super_cluster.get_member_concentration(2) == pytest.approx(2.75)
    assert super_cluster.get_total_concentration() == pytest.approx(6.0)

    projection = network.get_projection((3, 5, 0))
    assert [index for index, _ in projection] == [
        super_cluster.id - 1, super_cluster.moment_ids[0] - 1
    ]


def test_two_moments():
    network = get_simple_reaction_network(
        properties={
            'groupingMin': '5',
            'groupingWidthA': '2',
            'groupingWidthB': '2',
            'numMoments': '2'
        })
    super_clusters = network.get_all('Super')
    n_super = len(super_clusters)
    assert network.dof == network.size() + 2 * n_super
    for super_cluster in super_clusters:
        assert super_cluster.moment_ids == [
            super_cluster.id + n_super, super_cluster.id + 2 * n_super
        ]
    assert network.get_by_composition((2, 6, 0)).members == [(1, 5, 0),
                                                            (1, 6, 0),
                                                            (2, 5, 0),
                                                            (2, 6, 0)]


def test_invalid_grouping():
    properties = {'groupingMin': '5', 'groupingWidthB': '2'}
    network = get_simple_reaction_network(properties=properties,
                                          initialize=False)
    with pytest.raises(ValueError):
        network.reinitialize_connectivities()

    properties = {'groupingMin': '5', 'numMoments': '3'}
    network = get_simple_reaction_network(properties=properties,
                                          initialize=False)
    with pytest.raises(ValueError):
        network.reinitialize_connectivities()


def test_single_member_groups():
    concrete = get_simple_reaction_network()
    grouped = get_simple_reaction_network(properties={'groupingMin': '8'})
    concrete.set_temperature(1000.0)
    grouped.set_temperature(1000.0)

    super_clusters = grouped.get_all('Super')
    assert [s.members for s in super_clusters] == [[(1, 8, 0)], [(1, 9, 0)],
                                                   [(2, 8, 0)]]

    rng = np.random.default_rng(1)
    concrete_values = rng.uniform(1e-4, 1e-3, concrete.dof)
    grouped_values = np.zeros(grouped.dof)
    # The moments do not matter for a single member
    grouped_values[-3:] = 0.3
    clusters = concrete.get_all()
    indices = [grouped.get_by_composition(c.composition).id - 1 for c in clusters]
    for cluster, index in zip(clusters, indices):
        grouped_values[index] = concrete_values[cluster.id - 1]

    concrete_fluxes = concrete.compute_fluxes(concrete_values)
    grouped_fluxes = grouped.compute_fluxes(grouped_values)
    assert np.allclose(grouped_fluxes[indices], concrete_fluxes)
    for super_cluster in super_clusters:
        assert grouped.get_moment_flux(super_cluster.id) == 0.0

    concrete_partials = concrete.compute_partials(concrete_values).toarray()
    grouped_partials = grouped.compute_partials(grouped_values).toarray()
    assert np.allclose(grouped_partials[np.ix_(indices, indices)],
                       concrete_partials)
    assert np.allclose(grouped_partials[:, -3:], 0.0)
    assert np.allclose(grouped_partials[-3:], 0.0)


@pytest.mark.parametrize('properties', [{
    'groupingMin': '4',
    'groupingWidthA': '3'
}, {
    'groupingMin': '4',
    'groupingWidthA': '2',
    'groupingWidthB': '2',
    'numMoments': '2'
}])
def test_jacobian(properties):
    network = get_simple_reaction_network(properties=properties)
    network.set_temperature(1000.0)
    rng = np.random.default_rng(2)
    values = rng.uniform(1e-4, 1e-3, network.dof)

    jacobian = network.compute_partials(values).toarray()
    step = 1e-7
    finite_differences = np.zeros_like(jacobian)
    for j in range(network.dof):
        shift = np.zeros(network.dof)
        shift[j] = step
        finite_differences[:, j] = (network.compute_fluxes(values + shift) -
                                    network.compute_fluxes(values - shift)) / (
                                        2 * step)
    assert np.allclose(jacobian,
                       finite_differences,
                       rtol=1e-5,
                       atol=1e-6 * np.abs(jacobian).max())

    network.ingest_local_state(values)
    for super_cluster in network.get_all('Super'):
        partials = np.zeros(network.dof)
        super_cluster.get_moment_partial_derivatives(partials)
        assert np.allclose(partials,
                           jacobian[super_cluster.moment_ids[0] - 1])
