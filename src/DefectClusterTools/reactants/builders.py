from typing import Dict, Optional

from DefectClusterTools.reactants.cluster import Cluster
from DefectClusterTools.reactants.network import ReactionNetwork


def build_psi_network(max_he: int,
                      max_v: int,
                      max_i: int,
                      max_mixed: Optional[int] = None,
                      properties: Optional[Dict[str, str]] = None,
                      initialize: bool = True) -> ReactionNetwork:
    """
    Builds a helium/vacancy/interstitial network with the default physics.

    The clusters are added in the order He_1..He_maxHe, V_1..V_maxV,
    I_1..I_maxI, then the mixed HeV clusters by increasing vacancy count with
    nHe + nV <= max_mixed.

    Args:
        max_he (int): Largest helium cluster
        max_v (int): Largest vacancy cluster
        max_i (int): Largest interstitial cluster
        max_mixed (int, None): Largest total size of a mixed cluster. Defaults
            to max_he + max_v.
        properties (Dict[str, str], None): Properties overriding the ones
            derived from the sizes, e.g. {'dissociationsEnabled': 'false'}
        initialize (bool): Whether to call reinitialize_connectivities()
    """
    if max_mixed is None:
        max_mixed = max_he + max_v

    clusters = [Cluster((n, 0, 0)) for n in range(1, max_he + 1)]
    clusters += [Cluster((0, n, 0)) for n in range(1, max_v + 1)]
    clusters += [Cluster((0, 0, n)) for n in range(1, max_i + 1)]
    n_mixed = 0
    for n_v in range(1, max_v + 1):
        for n_he in range(1, max_mixed - n_v + 1):
            clusters.append(Cluster((n_he, n_v, 0)))
            n_mixed += 1

    network_properties = {
        'maxHeClusterSize': str(max_he),
        'maxVClusterSize': str(max_v),
        'maxIClusterSize': str(max_i),
        'maxMixedClusterSize': str(max_mixed),
        'numHeClusters': str(max_he),
        'numVClusters': str(max_v),
        'numIClusters': str(max_i),
        'numHeVClusters': str(n_mixed),
    }
    if properties is not None:
        network_properties.update(properties)

    network = ReactionNetwork(clusters, network_properties)
    if initialize:
        network.reinitialize_connectivities()
    return network


def get_simple_reaction_network(max_size: int = 10,
                                properties: Optional[Dict[str, str]] = None,
                                initialize: bool = True) -> ReactionNetwork:
    """
    Small reference network: He, V and I clusters of sizes 1 to max_size and
    every HeV cluster with nHe + nV <= max_size.
    """
    return build_psi_network(max_size,
                             max_size,
                             max_size,
                             max_mixed=max_size,
                             properties=properties,
                             initialize=initialize)
