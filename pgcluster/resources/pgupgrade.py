from typing import Dict, Iterable, List, Optional
from kubernetes_asyncio.client import (
    V1Container,
    V1EnvVar,
    V1Job,
    V1JobSpec,
    V1ObjectMeta,
    V1OwnerReference,
    V1PersistentVolumeClaim,
    V1PersistentVolumeClaimVolumeSource,
    V1PodSpec,
    V1PodTemplateSpec,
    V1ProjectedVolumeSource,
    V1SecretProjection,
    V1Volume,
    V1VolumeMount,
    V1VolumeProjection,
)
from pgcluster.resources.base import BaseResource
from pgcluster.common.models.labels import Labels
from pgcluster.types.models.postgrescluster_resources import PostgresClusterResources
from pgcluster.types.models.postgrescluster_spec import InstanceSetSpec

PGUPGRADE_SCRIPT = """\
set -eu
declare -r old_bin="/usr/pgsql-${PGUPGRADE_FROM_VERSION}/bin"
declare -r new_bin="/usr/pgsql-${PGUPGRADE_TO_VERSION}/bin"
declare -r old_data="/pgdata/pg${PGUPGRADE_FROM_VERSION}"
declare -r new_data="/pgdata/pg${PGUPGRADE_TO_VERSION}"

echo "Initializing new data directory ${new_data}"
"${new_bin}/initdb" --pgdata="${new_data}" --username=postgres

cd /pgdata
echo "Checking clusters for compatibility"
"${new_bin}/pg_upgrade" --old-bindir="${old_bin}" --new-bindir="${new_bin}" \\
  --old-datadir="${old_data}" --new-datadir="${new_data}" --link --check

echo "Upgrading cluster"
"${new_bin}/pg_upgrade" --old-bindir="${old_bin}" --new-bindir="${new_bin}" \\
  --old-datadir="${old_data}" --new-datadir="${new_data}" --link

echo "Upgrade complete"
"""


class PGUpgrade(BaseResource):
    """One-shot Job running pg_upgrade against the startup instance volumes."""

    CONTAINER_NAME = "pgupgrade"
    DATA_MOUNT_PATH = "/pgdata"
    WAL_MOUNT_PATH = "/pgwal"
    CERTS_MOUNT_PATH = "/pgconf/tls"
    DATA_VOLUME = "postgres-data"
    WAL_VOLUME = "postgres-wal"
    CERTS_VOLUME = "cert-volume"

    cluster_name: str
    namespace: str
    job_name: str
    image: str
    from_version: int
    to_version: int
    startup_instance: str
    instance_set: Optional[InstanceSetSpec]
    service_account_name: str
    cluster_certs: Optional[str]
    client_certs: Optional[str]
    volumes: List[V1PersistentVolumeClaim]
    image_pull_secrets: List[Dict]
    owner_reference: Optional[V1OwnerReference]
    backoff_limit: int

    @classmethod
    def from_cluster(
        cls,
        cluster,
        instance_set: Optional[InstanceSetSpec],
        service_account_name: str,
        cluster_certs: Optional[str],
        client_certs: Optional[str],
        volumes: Iterable[V1PersistentVolumeClaim],
        backoff_limit: int = 0,
    ) -> "PGUpgrade":
        upgrade = PGUpgrade()
        upgrade.cluster_name = cluster.name
        upgrade.namespace = cluster.namespace
        upgrade.job_name = PostgresClusterResources.pgupgrade_job_name(cluster.name)
        upgrade.image = cluster.upgrade.image or cluster.image
        upgrade.from_version = cluster.upgrade.from_postgres_version
        upgrade.to_version = cluster.postgres_version
        upgrade.startup_instance = cluster.status.startup_instance
        upgrade.instance_set = instance_set
        upgrade.service_account_name = service_account_name
        upgrade.cluster_certs = cluster_certs
        upgrade.client_certs = client_certs
        upgrade.volumes = list(volumes or [])
        upgrade.image_pull_secrets = cluster.image_pull_secrets
        upgrade.owner_reference = cluster.owner_reference()
        upgrade.backoff_limit = backoff_limit
        return upgrade

    @property
    def labels(self) -> Labels:
        return Labels.pgupgrade_job_labels(self.cluster_name)

    def startup_volume(self, role: str) -> Optional[V1PersistentVolumeClaim]:
        """The `role` volume of the startup instance, if any."""
        for pvc in self.volumes:
            labels = (pvc.metadata.labels if pvc.metadata else None) or {}
            if (
                labels.get(Labels.INSTANCE_LABEL) == self.startup_instance
                and labels.get(Labels.ROLE_LABEL) == role
            ):
                return pvc
        return None

    def prepare_volumes(self) -> List[V1Volume]:
        volumes = []
        data = self.startup_volume(Labels.ROLE_PGDATA)
        if data is not None:
            volumes.append(
                V1Volume(
                    name=self.DATA_VOLUME,
                    persistent_volume_claim=V1PersistentVolumeClaimVolumeSource(
                        claim_name=data.metadata.name
                    ),
                )
            )
        wal = self.startup_volume(Labels.ROLE_PGWAL)
        if wal is not None:
            volumes.append(
                V1Volume(
                    name=self.WAL_VOLUME,
                    persistent_volume_claim=V1PersistentVolumeClaimVolumeSource(
                        claim_name=wal.metadata.name
                    ),
                )
            )
        sources = [
            V1VolumeProjection(secret=V1SecretProjection(name=secret))
            for secret in (self.cluster_certs, self.client_certs)
            if secret
        ]
        if sources:
            volumes.append(
                V1Volume(
                    name=self.CERTS_VOLUME,
                    projected=V1ProjectedVolumeSource(sources=sources, default_mode=0o600),
                )
            )
        return volumes

    def prepare_volume_mounts(self, volumes: List[V1Volume]) -> List[V1VolumeMount]:
        paths = {
            self.DATA_VOLUME: self.DATA_MOUNT_PATH,
            self.WAL_VOLUME: self.WAL_MOUNT_PATH,
            self.CERTS_VOLUME: self.CERTS_MOUNT_PATH,
        }
        return [
            V1VolumeMount(
                name=volume.name,
                mount_path=paths[volume.name],
                read_only=volume.name == self.CERTS_VOLUME,
            )
            for volume in volumes
        ]

    def prepare_container(self, volumes: List[V1Volume]) -> V1Container:
        return V1Container(
            name=self.CONTAINER_NAME,
            image=self.image,
            command=["bash", "-ceu", "--", PGUPGRADE_SCRIPT],
            env=[
                V1EnvVar(name="PGUPGRADE_FROM_VERSION", value=str(self.from_version)),
                V1EnvVar(name="PGUPGRADE_TO_VERSION", value=str(self.to_version)),
            ],
            volume_mounts=self.prepare_volume_mounts(volumes),
        )

    def prepare_pod_spec(self) -> V1PodSpec:
        volumes = self.prepare_volumes()
        instance_set = self.instance_set
        return V1PodSpec(
            restart_policy="Never",
            service_account_name=self.service_account_name,
            image_pull_secrets=self.image_pull_secrets or None,
            affinity=getattr(instance_set, "affinity", None),
            tolerations=getattr(instance_set, "tolerations", None),
            priority_class_name=getattr(instance_set, "priority_class_name", None),
            containers=[self.prepare_container(volumes)],
            volumes=volumes,
        )

    def prepare_job(self) -> V1Job:
        """Build the pg_upgrade job owned by the cluster."""
        labels = self.labels.as_dict()
        pod_spec = self.prepare_pod_spec()
        annotations = self.prepare_hash_annotation(
            self.compute_hash(
                {
                    "image": self.image,
                    "from": self.from_version,
                    "to": self.to_version,
                    "startupInstance": self.startup_instance,
                }
            )
        )
        return V1Job(
            api_version="batch/v1",
            kind="Job",
            metadata=V1ObjectMeta(
                name=self.job_name,
                namespace=self.namespace,
                labels=labels,
                annotations=annotations,
                owner_references=[self.owner_reference] if self.owner_reference else None,
            ),
            spec=V1JobSpec(
                backoff_limit=self.backoff_limit,
                template=V1PodTemplateSpec(
                    metadata=V1ObjectMeta(labels=labels), spec=pod_spec
                ),
            ),
        )
