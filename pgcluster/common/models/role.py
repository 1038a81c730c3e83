"""Patroni role classification of cluster members.

Patroni reports the role of every member it manages in two places on the
member's pod: a ``status`` annotation holding a JSON document, and a role
label it keeps in sync for label selectors. Neither is owned by the operator,
so anything that cannot be read maps to :attr:`Role.UNKNOWN` instead of
raising.
"""
import json
from enum import Enum
from typing import Any, Mapping, Optional

from pgcluster.common.models.labels import Labels

#: Annotation Patroni writes on each member pod.
STATUS_ANNOTATION = "status"


class Role(Enum):
    PRIMARY = "primary"
    REPLICA = "replica"
    STANDBY_PRIMARY = "standby-primary"
    UNKNOWN = "unknown"

    @property
    def known(self) -> bool:
        return self is not Role.UNKNOWN

    @classmethod
    def from_str(cls, value: Any) -> "Role":
        """Map a Patroni role spelling to a Role."""
        if not isinstance(value, str):
            return cls.UNKNOWN
        return _PATRONI_ROLES.get(value.strip().lower(), cls.UNKNOWN)

    @classmethod
    def from_status(cls, status: Optional[str]) -> "Role":
        """Decode the role from the JSON text of a Patroni status annotation."""
        if not status:
            return cls.UNKNOWN
        try:
            document = json.loads(status)
        except (TypeError, ValueError):
            return cls.UNKNOWN
        if not isinstance(document, dict):
            return cls.UNKNOWN
        return cls.from_str(document.get("role"))

    @classmethod
    def from_annotations(cls, annotations: Optional[Mapping[str, str]]) -> "Role":
        return cls.from_status((annotations or {}).get(STATUS_ANNOTATION))

    @classmethod
    def from_labels(cls, labels: Optional[Mapping[str, str]]) -> "Role":
        return cls.from_str((labels or {}).get(Labels.ROLE_LABEL))


_PATRONI_ROLES = {
    "master": Role.PRIMARY,
    "primary": Role.PRIMARY,
    "leader": Role.PRIMARY,
    "replica": Role.REPLICA,
    "standby": Role.REPLICA,
    "sync_standby": Role.REPLICA,
    "standby_leader": Role.STANDBY_PRIMARY,
    "standby-leader": Role.STANDBY_PRIMARY,
}


def pod_status_role(pod) -> Role:
    """Role a pod reports through its Patroni status annotation."""
    metadata = getattr(pod, "metadata", None)
    return Role.from_annotations(getattr(metadata, "annotations", None))


def pod_label_role(pod) -> Role:
    """Role a pod carries in its role label."""
    metadata = getattr(pod, "metadata", None)
    return Role.from_labels(getattr(metadata, "labels", None))
