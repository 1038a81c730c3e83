import os
from typing import Any

_TRUE, _FALSE = {"True", "true", "yes", "1"}, {"False", "false", "no", "0"}


def _getenv(name: str, *default: Any) -> Any:
    try:
        v = os.environ[name]
        if v in _TRUE:
            return True
        elif v in _FALSE:
            return False
        else:
            return v
    except KeyError:
        pass
    if default:
        return default[0]
    raise KeyError(name)


# ------------------------------------------------
# ---- Defaults and environment variables ----
# ------------------------------------------------

#: Seconds to wait for a deleted resource (job, statefulset) to disappear
DELETION_TIMEOUT_SECONDS = float(_getenv("DELETION_TIMEOUT_SECONDS", 30.0))

#: Seconds between polls while waiting for a deleted resource to disappear
DELETION_POLL_INTERVAL_SECONDS = float(_getenv("DELETION_POLL_INTERVAL_SECONDS", 1.0))

#: Seconds between periodic full reconciliations of every PostgresCluster
RECONCILE_INTERVAL_SECONDS = float(_getenv("RECONCILE_INTERVAL_SECONDS", 30.0))

#: Name of the postgres container in instance pods
DATABASE_CONTAINER_NAME = _getenv("DATABASE_CONTAINER_NAME", "database")

#: Maximum number of clusters reconciled concurrently
WORKER_LIMIT = int(_getenv("WORKER_LIMIT", 4))

#: Number of retries before the pg_upgrade job is marked failed
UPGRADE_JOB_BACKOFF_LIMIT = int(_getenv("UPGRADE_JOB_BACKOFF_LIMIT", 0))


class Settings:
    """Operator settings"""

    deletion_timeout_seconds: float = DELETION_TIMEOUT_SECONDS
    deletion_poll_interval_seconds: float = DELETION_POLL_INTERVAL_SECONDS
    reconcile_interval_seconds: float = RECONCILE_INTERVAL_SECONDS
    database_container_name: str = DATABASE_CONTAINER_NAME
    worker_limit: int = WORKER_LIMIT
    upgrade_job_backoff_limit: int = UPGRADE_JOB_BACKOFF_LIMIT

    def __init__(
        self,
        *args,
        deletion_timeout_seconds: float = None,
        deletion_poll_interval_seconds: float = None,
        reconcile_interval_seconds: float = None,
        database_container_name: str = None,
        worker_limit: int = None,
        upgrade_job_backoff_limit: int = None,
        **kwargs,
    ):
        if deletion_timeout_seconds is not None:
            self.deletion_timeout_seconds = deletion_timeout_seconds

        if deletion_poll_interval_seconds is not None:
            self.deletion_poll_interval_seconds = deletion_poll_interval_seconds

        if reconcile_interval_seconds is not None:
            self.reconcile_interval_seconds = reconcile_interval_seconds

        if database_container_name is not None:
            self.database_container_name = database_container_name

        if worker_limit is not None:
            self.worker_limit = worker_limit

        if upgrade_job_backoff_limit is not None:
            self.upgrade_job_backoff_limit = upgrade_job_backoff_limit
