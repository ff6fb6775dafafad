from DefectClusterTools.reactants.cluster import Cluster, get_cluster_type
from DefectClusterTools.reactants.super_cluster import SuperCluster
from DefectClusterTools.reactants.network import ReactionNetwork
from DefectClusterTools.reactants.builders import (build_psi_network,
                                                   get_simple_reaction_network)
