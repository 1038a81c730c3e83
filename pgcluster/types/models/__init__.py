from .postgrescluster_spec import PostgresClusterSpec, InstanceSetSpec, UpgradeSpec
from .postgrescluster_resources import PostgresClusterResources
from .postgrescluster_status import PostgresClusterStatus

__all__ = [
    "PostgresClusterSpec",
    "InstanceSetSpec",
    "UpgradeSpec",
    "PostgresClusterResources",
    "PostgresClusterStatus",
]
