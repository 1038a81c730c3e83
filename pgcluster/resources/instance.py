"""Observed postgres instances of a PostgresCluster.

An instance is one member of the cluster. It is never stored anywhere: every
reconciliation rebuilds it by correlating the instance StatefulSets, their
Pods and the instance sets declared in the PostgresCluster. Any of the three
may be missing, e.g. a spec-only instance is about to be created while a pods-only
instance belongs to a set that was removed.

Predicates return ``(value, known)`` pairs. Callers must check ``known``
before trusting ``value``: an instance without pods is not the same thing as
an instance that is known not to be running.
"""
import logging
import random
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, Set, Tuple

import mmh3
from kubernetes_asyncio.client import (
    V1PersistentVolumeClaim,
    V1Pod,
    V1StatefulSet,
)

from pgcluster.common.models.labels import Labels
from pgcluster.common.models.role import Role, pod_label_role, pod_status_role
from pgcluster.types.models.postgrescluster_resources import PostgresClusterResources
from pgcluster.types.models.postgrescluster_spec import InstanceSetSpec

logger = logging.getLogger(__name__)

#: Characters used in generated instance name suffixes (no vowels, no lookalikes).
NAME_ALPHABET = "bcdfghjklmnpqrstvwxz2456789"
NAME_SUFFIX_LENGTH = 4


def _labels(obj) -> Dict[str, str]:
    metadata = getattr(obj, "metadata", None)
    return getattr(metadata, "labels", None) or {}


def _name(obj) -> str:
    metadata = getattr(obj, "metadata", None)
    return getattr(metadata, "name", None) or ""


class Instance:
    """A single postgres member of a cluster."""

    name: str
    pods: List[V1Pod]
    runner: Optional[V1StatefulSet]
    spec: Optional[InstanceSetSpec]

    def __init__(
        self,
        name: str,
        pods: List[V1Pod] = None,
        runner: V1StatefulSet = None,
        spec: InstanceSetSpec = None,
    ):
        self.name = name
        self.pods = list(pods or [])
        self.runner = runner
        self.spec = spec

    def __repr__(self) -> str:
        return f"Instance<{self.name} pods={len(self.pods)} runner={self.runner is not None}>"

    @property
    def first_pod(self) -> Optional[V1Pod]:
        return self.pods[0] if self.pods else None

    def is_running(self, container: str) -> Tuple[bool, bool]:
        """Whether `container` of the first pod is running.

        Regular and init containers are both considered. `known` is False
        when there are no pods or the pod reports no status for `container`.
        """
        pod = self.first_pod
        if pod is None or pod.status is None:
            return False, False

        statuses = list(pod.status.container_statuses or []) + list(
            pod.status.init_container_statuses or []
        )
        for status in statuses:
            if status.name == container:
                return status.state is not None and status.state.running is not None, True
        return False, False

    def is_writable(self) -> Tuple[bool, bool]:
        """Whether the first pod reports the primary role in its status annotation."""
        pod = self.first_pod
        if pod is None:
            return False, False
        role = pod_status_role(pod)
        if not role.known:
            return False, False
        return role is Role.PRIMARY, True

    def is_primary(self) -> Tuple[bool, bool]:
        """Whether the first pod is labelled primary.

        Falls back to the status annotation when the role label is missing.
        """
        pod = self.first_pod
        if pod is None:
            return False, False
        role = pod_label_role(pod)
        if not role.known:
            role = pod_status_role(pod)
        if not role.known:
            return False, False
        return role is Role.PRIMARY, True

    def is_terminating(self) -> Tuple[bool, bool]:
        if not self.pods:
            return False, False
        terminating = any(
            pod.metadata is not None and pod.metadata.deletion_timestamp is not None
            for pod in self.pods
        )
        return terminating, True

    def is_ready(self) -> Tuple[bool, bool]:
        pod = self.first_pod
        if pod is None or pod.status is None:
            return False, False
        for condition in pod.status.conditions or []:
            if condition.type == "Ready":
                return condition.status == "True", True
        return False, False


class ObservedInstances:
    """Snapshot of every instance of a cluster in observation order."""

    for_cluster: List[Instance]
    by_name: Dict[str, Instance]
    by_set: Dict[str, List[Instance]]
    set_names: Set[str]

    def __init__(self):
        self.for_cluster = []
        self.by_name = {}
        self.by_set = {}
        self.set_names = set()

    def _register(self, name: str, set_name: str, spec: Optional[InstanceSetSpec]) -> Instance:
        instance = Instance(name, spec=spec)
        self.for_cluster.append(instance)
        self.by_name[name] = instance
        self.by_set.setdefault(set_name, []).append(instance)
        self.set_names.add(set_name)
        return instance

    def writable_instances(self, container: str) -> List[Instance]:
        """Every instance that is not terminating, writable and running `container`."""
        candidates = []
        for instance in self.for_cluster:
            terminating, known_terminating = instance.is_terminating()
            writable, known_writable = instance.is_writable()
            running, known_running = instance.is_running(container)
            if (
                known_terminating
                and not terminating
                and known_writable
                and writable
                and known_running
                and running
            ):
                candidates.append(instance)
        return candidates

    def writable_pod(self, container: str) -> Tuple[Optional[V1Pod], Optional[Instance]]:
        """Return the pod and instance of the writable member.

        The first qualifying instance in observation order wins. More than one
        qualifying instance means Patroni reports several primaries at once,
        which is logged as a warning.
        """
        candidates = self.writable_instances(container)
        if not candidates:
            return None, None
        if len(candidates) > 1:
            logger.warning(
                "Found %d writable instances (%s), using %s",
                len(candidates),
                ", ".join(i.name for i in candidates),
                candidates[0].name,
            )
        return candidates[0].first_pod, candidates[0]


def new_observed_instances(
    cluster, runners: Iterable[V1StatefulSet], pods: Iterable[V1Pod]
) -> ObservedInstances:
    """Correlate StatefulSets, Pods and instance set specs into instances.

    StatefulSets are registered first, by name. Pods attach to the instance
    named by their instance label, creating a pods-only instance when no
    StatefulSet has that name.
    """
    observed = ObservedInstances()
    specs = {s.name: s for s in getattr(cluster, "instance_sets", None) or []}

    for runner in runners or []:
        name = _name(runner)
        set_name = _labels(runner).get(Labels.INSTANCE_SET_LABEL, "")
        instance = observed.by_name.get(name)
        if instance is None:
            instance = observed._register(name, set_name, specs.get(set_name))
        instance.runner = runner

    for pod in pods or []:
        labels = _labels(pod)
        name = labels.get(Labels.INSTANCE_LABEL, "")
        set_name = labels.get(Labels.INSTANCE_SET_LABEL, "")
        instance = observed.by_name.get(name)
        if instance is None:
            instance = observed._register(name, set_name, specs.get(set_name))
        instance.pods.append(pod)

    return observed


def pods_to_keep(pods: Iterable[V1Pod], want: Dict[str, int]) -> List[V1Pod]:
    """Select the pods that survive scaling each instance set to `want`.

    Sets missing from `want` keep nothing. Within a set the pod labelled
    primary is kept first, then the other pods in observation order until the
    set's count is reached. Kept primaries come first in the result.
    """
    pods = list(pods or [])
    by_set: Dict[str, List[V1Pod]] = OrderedDict()
    for pod in pods:
        set_name = _labels(pod).get(Labels.INSTANCE_SET_LABEL, "")
        by_set.setdefault(set_name, []).append(pod)

    keep_primaries, keep_others = [], []
    kept_ids = set()
    for set_name, set_pods in by_set.items():
        count = want.get(set_name, 0)
        if count <= 0:
            continue
        kept = 0
        for pod in set_pods:
            if kept >= count:
                break
            if pod_label_role(pod) is Role.PRIMARY:
                keep_primaries.append(pod)
                kept_ids.add(id(pod))
                kept += 1
        for pod in set_pods:
            if kept >= count:
                break
            if id(pod) in kept_ids:
                continue
            keep_others.append(pod)
            kept_ids.add(id(pod))
            kept += 1

    # Restore observation order within each group.
    order = {id(pod): idx for idx, pod in enumerate(pods)}
    keep_primaries.sort(key=lambda p: order[id(p)])
    keep_others.sort(key=lambda p: order[id(p)])
    return keep_primaries + keep_others


def find_available_instance_names(
    instance_set: InstanceSetSpec,
    observed: ObservedInstances,
    volumes: Iterable[V1PersistentVolumeClaim],
) -> List[str]:
    """Names of instances in `instance_set` whose volumes can be reused.

    A name qualifies when it has a data volume, and a WAL volume too when the
    set declares one, and no StatefulSet currently runs it.
    """
    data_names, wal_names = [], set()
    for volume in volumes or []:
        labels = _labels(volume)
        if labels.get(Labels.INSTANCE_SET_LABEL) != instance_set.name:
            continue
        name = labels.get(Labels.INSTANCE_LABEL)
        if not name:
            continue
        existing = observed.by_name.get(name)
        if existing is not None and existing.runner is not None:
            continue
        role = labels.get(Labels.ROLE_LABEL)
        if role == Labels.ROLE_PGDATA and name not in data_names:
            data_names.append(name)
        elif role == Labels.ROLE_PGWAL:
            wal_names.add(name)

    if getattr(instance_set, "wal_volume_claim_spec", None) is not None:
        return [name for name in data_names if name in wal_names]
    return data_names


def _random_suffix(rng: random.Random) -> str:
    return "".join(rng.choice(NAME_ALPHABET) for _ in range(NAME_SUFFIX_LENGTH))


def generate_instance_name(cluster_name: str, set_name: str, rng: random.Random = None) -> str:
    return PostgresClusterResources.instance_name(
        cluster_name, set_name, _random_suffix(rng or random.Random())
    )


def generate_startup_instance(cluster, instance_set: InstanceSetSpec) -> str:
    """Deterministic instance name for the first member of `instance_set`.

    Seeded by the cluster uid and set name, so repeated passes agree on it.
    """
    seed = mmh3.hash(f"{cluster.uid}{instance_set.name}", signed=False)
    return generate_instance_name(cluster.name, instance_set.name, random.Random(seed))


def next_instance_names(
    cluster,
    instance_set: InstanceSetSpec,
    observed: ObservedInstances,
    volumes: Iterable[V1PersistentVolumeClaim],
    count: int,
    rng: random.Random = None,
) -> List[str]:
    """Names for `count` new instances of `instance_set`.

    Names with reusable volumes are handed out first, the rest are generated.
    """
    if count <= 0:
        return []
    names = find_available_instance_names(instance_set, observed, volumes)[:count]
    rng = rng or random.Random()
    while len(names) < count:
        name = generate_instance_name(cluster.name, instance_set.name, rng)
        if name not in observed.by_name and name not in names:
            names.append(name)
    return names


def instance_replicas(cluster, instance_name: str, num_instance_pods: int) -> int:
    """Intended replica count of the StatefulSet running `instance_name`.

    `num_instance_pods` counts the instance pods of the whole cluster, not
    only those of `instance_name`. While shutting down only the startup instance keeps running, and only
    until the other pods are gone. Otherwise the startup instance starts
    first and the others follow once any pod is running.
    """
    startup_instance = cluster.status.startup_instance or ""
    if cluster.shutdown:
        if startup_instance == instance_name and num_instance_pods > 1:
            return 1
        return 0
    if startup_instance in ("", instance_name) or num_instance_pods > 0:
        return 1
    return 0
