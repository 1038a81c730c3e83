import copy
from typing import Dict, List, Mapping, Optional
from benedict import benedict
from pgcluster.utils.helpers import (
    upsert_condition,
    find_condition,
    remove_condition,
    is_condition_true,
)


class PostgresClusterStatus:
    """Status block of a PostgresCluster.

    Reads come from the status observed at the start of the pass, overlaid
    with the updates made during it. Only the updates are sent back as the
    status patch.
    """

    def __init__(self, status: Optional[Mapping] = None):
        self._status = benedict(copy.deepcopy(dict(status or {})), keyattr_dynamic=True)
        self._updates = benedict(keyattr_dynamic=True)

    def get(self, keypath: str, default=None):
        return self._status.get(keypath, default)

    def set(self, keypath: str, value) -> None:
        self._status[keypath] = value
        self._updates[keypath] = value

    @property
    def conditions(self) -> List[Dict]:
        return list(self._status.get("conditions") or [])

    def find_condition(self, type_: str) -> Optional[Dict]:
        return find_condition(self.conditions, type_)

    def is_condition_true(self, type_: str) -> bool:
        return is_condition_true(self.conditions, type_)

    def set_condition(
        self,
        type_: str,
        status: str,
        reason: str,
        message: str,
        observed_generation: int = None,
    ) -> None:
        cond = {
            "type": type_,
            "status": status,
            "reason": reason,
            "message": message,
        }
        if observed_generation is not None:
            cond["observedGeneration"] = observed_generation
        self.set("conditions", upsert_condition(self.conditions, cond))

    def remove_condition(self, type_: str) -> None:
        if self.find_condition(type_) is not None:
            self.set("conditions", remove_condition(self.conditions, type_))

    @property
    def startup_instance(self) -> str:
        return self._status.get("startupInstance") or ""

    @startup_instance.setter
    def startup_instance(self, value: str) -> None:
        self.set("startupInstance", value)

    @property
    def startup_instance_set(self) -> str:
        return self._status.get("startupInstanceSet") or ""

    @startup_instance_set.setter
    def startup_instance_set(self, value: str) -> None:
        self.set("startupInstanceSet", value)

    @property
    def system_identifier(self) -> str:
        return self._status.get("patroni.systemIdentifier") or ""

    @system_identifier.setter
    def system_identifier(self, value: str) -> None:
        self.set("patroni.systemIdentifier", value)

    @property
    def pgbouncer_postgres_revision(self) -> str:
        return self._status.get("proxy.pgBouncer.postgresRevision") or ""

    @pgbouncer_postgres_revision.setter
    def pgbouncer_postgres_revision(self, value: str) -> None:
        self.set("proxy.pgBouncer.postgresRevision", value)

    @property
    def exporter_configuration(self) -> str:
        return self._status.get("monitoring.exporterConfiguration") or ""

    @exporter_configuration.setter
    def exporter_configuration(self, value: str) -> None:
        self.set("monitoring.exporterConfiguration", value)

    @property
    def changed(self) -> bool:
        return bool(self._updates)

    def as_patch(self) -> Dict:
        """Status fields changed during this pass."""
        return dict(self._updates)

    def as_dict(self) -> Dict:
        return dict(self._status)
