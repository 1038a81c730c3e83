from .instance import Instance, ObservedInstances
from .pgupgrade import PGUpgrade
from .postgrescluster import PostgresCluster

__all__ = ["Instance", "ObservedInstances", "PGUpgrade", "PostgresCluster"]
