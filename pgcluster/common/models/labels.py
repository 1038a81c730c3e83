from typing import Dict


class ResourceLabels:
    PGCLUSTER_DOMAIN: str = "pgcluster.io/"

    CLUSTER_LABEL = PGCLUSTER_DOMAIN + "cluster"

    INSTANCE_SET_LABEL = PGCLUSTER_DOMAIN + "instance-set"

    INSTANCE_LABEL = PGCLUSTER_DOMAIN + "instance"

    # Patroni role on instance pods, volume role on persistent volume claims.
    ROLE_LABEL = PGCLUSTER_DOMAIN + "role"

    DATA_LABEL = PGCLUSTER_DOMAIN + "data"

    PATRONI_LABEL = PGCLUSTER_DOMAIN + "patroni"

    PGUPGRADE_LABEL = PGCLUSTER_DOMAIN + "pgupgrade"

    ROLE_PGDATA = "pgdata"

    ROLE_PGWAL = "pgwal"

    ROLE_PGUPGRADE = "pgupgrade"

    DATA_POSTGRES = "postgres"


class Labels(ResourceLabels):
    KUBERNETES_DOMAIN = "app.kubernetes.io/"

    KUBERNETES_NAME_LABEL = KUBERNETES_DOMAIN + "name"

    KUBERNETES_INSTANCE_LABEL = KUBERNETES_DOMAIN + "instance"

    KUBERNETES_MANAGED_BY_LABEL = KUBERNETES_DOMAIN + "managed-by"

    APPLICATION_NAME = "postgres"

    _labels: Dict[str, str]

    def __init__(self, labels: Dict[str, str] = None) -> None:
        self._labels = dict(labels) if labels else dict()

    def update(self, labels: Dict[str, str]) -> "Labels":
        self._labels.update(labels.copy())
        return self

    def as_dict(self) -> Dict[str, str]:
        """Return labels as dictionary."""
        return self._labels.copy()

    def as_str(self):
        """Return labels as comma separated selector string."""
        return ",".join([f"{k}={v}" for k, v in self._labels.items()])

    def include(self, label: str, value: str) -> "Labels":
        self.update({label: value})
        return self

    def include_cluster(self, cluster: str) -> "Labels":
        return self.include(self.CLUSTER_LABEL, cluster)

    def include_instance_set(self, instance_set: str) -> "Labels":
        return self.include(self.INSTANCE_SET_LABEL, instance_set)

    def include_instance(self, instance: str) -> "Labels":
        return self.include(self.INSTANCE_LABEL, instance)

    def include_role(self, role: str) -> "Labels":
        return self.include(self.ROLE_LABEL, role)

    def include_data(self, data: str) -> "Labels":
        return self.include(self.DATA_LABEL, data)

    def include_pgupgrade(self, cluster: str) -> "Labels":
        return self.include(self.PGUPGRADE_LABEL, cluster)

    def include_kubernetes_managed_by(self, operator_name: str) -> "Labels":
        return self.include(self.KUBERNETES_MANAGED_BY_LABEL, operator_name)

    def contains(self, other: "Labels"):
        """Returns True if all labels in `other` are contained."""
        return all(
            key in self._labels and self._labels[key] == value
            for key, value in other.as_dict().items()
        )

    def __str__(self):
        return f"Labels<{self._labels}>"

    @classmethod
    def cluster_selector(cls, cluster: str) -> "Labels":
        """Labels selecting every object that belongs to a cluster."""
        return Labels().include_cluster(cluster)

    @classmethod
    def cluster_instances_selector(cls, cluster: str) -> str:
        """Selector string matching the instance StatefulSets and Pods of a cluster.

        Every instance object carries the instance-set label, which is what
        tells them apart from backup, pooler and upgrade objects.
        """
        return f"{cls.cluster_selector(cluster).as_str()},{cls.INSTANCE_SET_LABEL}"

    @classmethod
    def cluster_volumes_selector(cls, cluster: str) -> str:
        """Selector string matching the postgres data and WAL volumes of a cluster."""
        return (
            f"{cls.cluster_selector(cluster).as_str()},"
            f"{cls.ROLE_LABEL} in ({cls.ROLE_PGDATA},{cls.ROLE_PGWAL})"
        )

    @classmethod
    def instance_selector(cls, cluster: str, instance: str) -> "Labels":
        return cls.cluster_selector(cluster).include_instance(instance)

    @classmethod
    def pgupgrade_job_labels(cls, cluster: str) -> "Labels":
        return (
            cls.cluster_selector(cluster)
            .include_pgupgrade(cluster)
            .include_role(cls.ROLE_PGUPGRADE)
        )

    @classmethod
    def pgupgrade_job_selector(cls, cluster: str) -> "Labels":
        return cls.cluster_selector(cluster).include_pgupgrade(cluster)

    @classmethod
    def generate_instance_labels(
        cls, cluster: str, instance_set: str, instance: str, managed_by: str
    ) -> "Labels":
        return (
            Labels()
            .include_cluster(cluster)
            .include_instance_set(instance_set)
            .include_instance(instance)
            .include_data(cls.DATA_POSTGRES)
            .include(cls.KUBERNETES_NAME_LABEL, cls.APPLICATION_NAME)
            .include(cls.KUBERNETES_INSTANCE_LABEL, cluster)
            .include_kubernetes_managed_by(managed_by)
        )
