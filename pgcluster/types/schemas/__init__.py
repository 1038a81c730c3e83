from .postgrescluster_spec import (
    PostgresClusterSpecSchema,
    InstanceSetSpecSchema,
    UpgradeSpecSchema,
)

__all__ = [
    "PostgresClusterSpecSchema",
    "InstanceSetSpecSchema",
    "UpgradeSpecSchema",
]
