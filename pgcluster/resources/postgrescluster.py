import logging
from enum import Enum
from logging import Logger
from typing import Dict, List, Optional, Tuple
from kubernetes_asyncio.client import (
    AppsV1Api,
    BatchV1Api,
    CoreV1Api,
    V1Container,
    V1ContainerPort,
    V1DeleteOptions,
    V1Endpoints,
    V1Job,
    V1LabelSelector,
    V1ObjectMeta,
    V1OwnerReference,
    V1PersistentVolumeClaim,
    V1PersistentVolumeClaimVolumeSource,
    V1PodSpec,
    V1PodTemplateSpec,
    V1StatefulSet,
    V1StatefulSetSpec,
    V1Volume,
    V1VolumeMount,
)
from kubernetes_asyncio.client.api_client import ApiClient

from pgcluster.common.models.labels import Labels
from pgcluster.resources.base import BaseResource
from pgcluster.resources.instance import (
    Instance,
    ObservedInstances,
    generate_startup_instance,
    instance_replicas,
    new_observed_instances,
    next_instance_names,
    pods_to_keep,
)
from pgcluster.resources.pgupgrade import PGUpgrade
from pgcluster.sensors import OperatorSensor
from pgcluster.types.models.postgrescluster_resources import PostgresClusterResources
from pgcluster.types.models.postgrescluster_spec import (
    InstanceSetSpec,
    PostgresClusterSpec,
    UpgradeSpec,
)
from pgcluster.types.models.postgrescluster_status import PostgresClusterStatus
from pgcluster.types.settings import Settings

# Condition types
PGUPGRADE_PROGRESSING = "PGUpgradeProgressing"
PGUPGRADE_COMPLETED = "PGUpgradeCompleted"
POSTGRES_DATA_INITIALIZED = "PostgresDataInitialized"

# Condition reasons
PGUPGRADE_REQUESTED = "PGUpgradeRequested"
READY_FOR_UPGRADE = "ReadyForUpgrade"
PGUPGRADE_COMPLETE = "PGUpgradeComplete"
PGUPGRADE_FAILED = "PGUpgradeFailed"


class UpgradePhase(Enum):
    """Major upgrade progress, derived from what is observed in the cluster."""

    IDLE = "Idle"
    AWAITING_TEARDOWN = "AwaitingTeardown"
    PREPARING = "Preparing"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


def job_condition_true(job: Optional[V1Job], type_: str) -> bool:
    if job is None or job.status is None:
        return False
    return any(
        c.type == type_ and c.status == "True" for c in job.status.conditions or []
    )


def upgrade_phase(
    enabled: bool,
    status: PostgresClusterStatus,
    endpoints: List[V1Endpoints],
    job: Optional[V1Job],
) -> UpgradePhase:
    if not enabled:
        return UpgradePhase.IDLE
    # Completed wins over endpoints so the cluster is never torn down twice.
    if status.is_condition_true(PGUPGRADE_COMPLETED):
        return UpgradePhase.SUCCEEDED
    if endpoints:
        return UpgradePhase.AWAITING_TEARDOWN
    if job is None:
        return UpgradePhase.PREPARING
    completed = status.find_condition(PGUPGRADE_COMPLETED)
    if completed is not None and completed.get("reason") == PGUPGRADE_FAILED:
        return UpgradePhase.FAILED
    return UpgradePhase.RUNNING


class PostgresCluster(BaseResource):
    """PostgresCluster kubernetes resource and its reconciliation."""

    KIND = "PostgresCluster"
    GROUP_NAME = "pgcluster.io"
    GROUP_VERSION = "v1beta1"
    PLURAL_NAME = "postgresclusters"

    logger: Logger
    conf: Settings
    sensor: OperatorSensor

    name: str
    namespace: str
    uid: str
    generation: int
    annotations: Dict[str, str] = None

    # CRD spec models
    image: Optional[str]
    postgres_version: int
    port: int
    shutdown: bool
    instance_sets: List[InstanceSetSpec]
    image_pull_secrets: List[Dict]
    upgrade: Optional[UpgradeSpec]
    status: PostgresClusterStatus

    _api_client: ApiClient = None
    _apps_v1_api: AppsV1Api = None
    _core_v1_api: CoreV1Api = None
    _batch_v1_api: BatchV1Api = None

    def __init__(
        self,
        name: str,
        namespace: str,
        uid: str = None,
        generation: int = None,
        api_client: ApiClient = None,
        conf: Settings = None,
        sensor: OperatorSensor = None,
        logger: Logger = None,
    ):
        self.name = name
        self.namespace = namespace
        self.uid = uid
        self.generation = generation
        self._api_client = api_client
        self.conf = conf or Settings()
        self.sensor = sensor or OperatorSensor()
        self.logger = logger or logging.getLogger(__name__)
        self.image = None
        self.postgres_version = None
        self.port = 5432
        self.shutdown = False
        self.instance_sets = []
        self.image_pull_secrets = []
        self.upgrade = None
        self.status = PostgresClusterStatus()

    @classmethod
    def from_spec(
        cls,
        name: str,
        namespace: str,
        spec: PostgresClusterSpec,
        uid: str = None,
        generation: int = None,
        status: Dict = None,
        annotations: Optional[Dict[str, str]] = None,
        api_client: ApiClient = None,
        conf: Settings = None,
        sensor: OperatorSensor = None,
        logger: Logger = None,
    ) -> "PostgresCluster":
        cluster = PostgresCluster(
            name,
            namespace,
            uid=uid,
            generation=generation,
            api_client=api_client,
            conf=conf,
            sensor=sensor,
            logger=logger,
        )
        cluster.annotations = annotations
        cluster.image = spec.image
        cluster.postgres_version = spec.postgres_version
        cluster.port = spec.port
        cluster.shutdown = bool(spec.shutdown)
        cluster.instance_sets = list(spec.instance_sets)
        cluster.image_pull_secrets = list(spec.image_pull_secrets or [])
        cluster.upgrade = spec.upgrade
        cluster.status = PostgresClusterStatus(status)
        return cluster

    @property
    def upgrade_enabled(self) -> bool:
        return self.upgrade is not None and bool(self.upgrade.enabled)

    @property
    def api_client(self) -> ApiClient:
        if self._api_client is None:
            self._api_client = ApiClient()
        return self._api_client

    @property
    def apps_v1_api(self) -> AppsV1Api:
        if self._apps_v1_api is None:
            self._apps_v1_api = AppsV1Api(self.api_client)
        return self._apps_v1_api

    @property
    def core_v1_api(self) -> CoreV1Api:
        if self._core_v1_api is None:
            self._core_v1_api = CoreV1Api(self.api_client)
        return self._core_v1_api

    @property
    def batch_v1_api(self) -> BatchV1Api:
        if self._batch_v1_api is None:
            self._batch_v1_api = BatchV1Api(self.api_client)
        return self._batch_v1_api

    def owner_reference(self) -> V1OwnerReference:
        return V1OwnerReference(
            api_version=f"{self.GROUP_NAME}/{self.GROUP_VERSION}",
            kind=self.KIND,
            name=self.name,
            uid=self.uid,
            controller=True,
            block_owner_deletion=True,
        )

    def instance_set(self, name: str) -> Optional[InstanceSetSpec]:
        return next((s for s in self.instance_sets if s.name == name), None)

    def _sync_start(self, resource_name: str, resource_type: str):
        return self.sensor.on_resource_sync_start(
            self.name, resource_name, self.namespace, resource_type
        )

    def _sync_complete(
        self, state, resource_name: str, resource_type: str, operation: str, error=None
    ):
        self.sensor.on_resource_sync_complete(
            self.name,
            resource_name,
            self.namespace,
            resource_type,
            state,
            operation,
            error is None,
            error,
        )

    # =============================================================================
    # Observation
    # =============================================================================

    async def observe_instances(
        self,
    ) -> Tuple[ObservedInstances, List[V1PersistentVolumeClaim]]:
        """Fetch instance StatefulSets, Pods and volumes and correlate them."""
        instances_selector = Labels.cluster_instances_selector(self.name)
        runners = await self.list_stateful_sets(
            self.apps_v1_api, self.namespace, label_selector=instances_selector
        )
        pods = await self.list_pods(
            self.core_v1_api, self.namespace, label_selector=instances_selector
        )
        volumes = await self.list_persistent_volume_claims(
            self.core_v1_api,
            self.namespace,
            label_selector=Labels.cluster_volumes_selector(self.name),
        )
        return new_observed_instances(self, runners, pods), volumes

    def find_writable_instance(self, observed: ObservedInstances) -> Optional[Instance]:
        container = self.conf.database_container_name
        candidates = observed.writable_instances(container)
        if len(candidates) > 1:
            self.sensor.on_split_brain_detected(
                self.name, self.namespace, [i.name for i in candidates]
            )
        _, instance = observed.writable_pod(container)
        return instance

    # =============================================================================
    # Major version upgrade
    # =============================================================================

    async def observe_upgrade_env(self) -> Tuple[List[V1Endpoints], Optional[V1Job]]:
        """Fetch the Patroni endpoints and the upgrade job of the cluster.

        A finished job is reflected in the PGUpgradeCompleted condition.
        """
        endpoints = []
        for name in PostgresClusterResources.patroni_endpoints_names(self.name):
            ep = await self.fetch_endpoints(self.core_v1_api, name, self.namespace)
            if ep is not None:
                endpoints.append(ep)

        jobs = await self.list_jobs(
            self.batch_v1_api,
            self.namespace,
            label_selector=Labels.pgupgrade_job_selector(self.name).as_str(),
        )
        job = jobs[0] if jobs else None

        if job_condition_true(job, "Complete"):
            self.status.set_condition(
                PGUPGRADE_COMPLETED,
                "True",
                PGUPGRADE_COMPLETE,
                "pg_upgrade completed successfully",
                self.generation,
            )
        elif job_condition_true(job, "Failed"):
            self.status.set_condition(
                PGUPGRADE_COMPLETED,
                "False",
                PGUPGRADE_FAILED,
                "pg_upgrade failed",
                self.generation,
            )
        return endpoints, job

    def select_startup_instance(self, observed: ObservedInstances) -> None:
        """Record which instance starts first after the upgrade.

        The current primary when one is known, otherwise a stable generated
        name in the first instance set.
        """
        for instance in observed.for_cluster:
            primary, known = instance.is_primary()
            if known and primary:
                self.status.startup_instance = instance.name
                self.status.startup_instance_set = (
                    instance.spec.name
                    if instance.spec is not None
                    else self._instance_set_label(instance)
                )
                return
        if not self.instance_sets:
            return
        first = self.instance_sets[0]
        self.status.startup_instance = generate_startup_instance(self, first)
        self.status.startup_instance_set = first.name

    @staticmethod
    def _instance_set_label(instance: Instance) -> str:
        source = instance.runner or instance.first_pod
        labels = (source.metadata.labels if source and source.metadata else None) or {}
        return labels.get(Labels.INSTANCE_SET_LABEL, "")

    async def prepare_for_upgrade(
        self,
        observed: ObservedInstances,
        endpoints: List[V1Endpoints],
        job: Optional[V1Job],
    ) -> None:
        """Tear down what must not survive a major upgrade.

        An existing job is deleted first; the endpoints go on a later pass.
        """
        if job is not None:
            job_name = job.metadata.name
            state = self._sync_start(job_name, "Job")
            try:
                await self.delete_job(self.batch_v1_api, job_name, self.namespace)
            except Exception as ex:
                self._sync_complete(state, job_name, "Job", "deleted", ex)
                raise
            self._sync_complete(state, job_name, "Job", "deleted")
            self.status.set_condition(
                PGUPGRADE_PROGRESSING,
                "True",
                PGUPGRADE_REQUESTED,
                "Preparing cluster for upgrade: removing existing upgrade job",
                self.generation,
            )
            return

        if not endpoints:
            return

        for ep in endpoints:
            ep_name = ep.metadata.name
            state = self._sync_start(ep_name, "Endpoints")
            try:
                await self.delete_endpoints(self.core_v1_api, ep_name, self.namespace)
            except Exception as ex:
                self._sync_complete(state, ep_name, "Endpoints", "deleted", ex)
                raise
            self._sync_complete(state, ep_name, "Endpoints", "deleted")

        self.select_startup_instance(observed)

        # Identity cached from the old data directory is stale after pg_upgrade.
        self.status.system_identifier = ""
        self.status.pgbouncer_postgres_revision = ""
        self.status.exporter_configuration = ""
        self.status.remove_condition(POSTGRES_DATA_INITIALIZED)
        self.status.set_condition(
            PGUPGRADE_PROGRESSING,
            "True",
            READY_FOR_UPGRADE,
            "Upgrading cluster postgres major version",
            self.generation,
        )
        self.logger.info(
            f"Ready for upgrade, startup instance {self.status.startup_instance}"
        )

    async def reconcile_upgrade_job(
        self,
        observed: ObservedInstances,
        instance_specs: List[InstanceSetSpec],
        service_account_name: str,
        cluster_certs: Optional[str],
        client_certs: Optional[str],
        volumes: List[V1PersistentVolumeClaim],
    ) -> bool:
        """Drive the major upgrade one step.

        Returns True while the upgrade must block normal instance
        reconciliation.
        """
        if not self.upgrade_enabled:
            return False

        endpoints, job = await self.observe_upgrade_env()
        phase = upgrade_phase(True, self.status, endpoints, job)
        self.sensor.on_upgrade_phase(self.name, self.namespace, phase.value)

        if phase is UpgradePhase.SUCCEEDED:
            return False

        if phase is UpgradePhase.AWAITING_TEARDOWN:
            await self.prepare_for_upgrade(observed, endpoints, job)
            return True

        if phase is UpgradePhase.PREPARING:
            await self.prepare_for_upgrade(observed, endpoints, job)
            if not self.status.startup_instance:
                self.select_startup_instance(observed)
            startup_set = next(
                (
                    s
                    for s in instance_specs or []
                    if s.name == self.status.startup_instance_set
                ),
                None,
            )
            job = PGUpgrade.from_cluster(
                self,
                startup_set,
                service_account_name,
                cluster_certs,
                client_certs,
                volumes,
                backoff_limit=self.conf.upgrade_job_backoff_limit,
            ).prepare_job()
            state = self._sync_start(job.metadata.name, "Job")
            try:
                await self.create_job(self.batch_v1_api, self.namespace, job)
            except Exception as ex:
                self._sync_complete(state, job.metadata.name, "Job", "created", ex)
                raise
            self._sync_complete(state, job.metadata.name, "Job", "created")
            self.logger.info(f"Created upgrade job {job.metadata.name}")
            return True

        # Running or failed: wait for the job or for the request to change.
        return True

    # =============================================================================
    # Instances
    # =============================================================================

    async def delete_instance(self, instance_name: str, reason: str = "scale_down") -> None:
        """Delete an instance StatefulSet, then its pods, volumes, configs and secrets.

        Pods are deleted explicitly for instances that lost their StatefulSet.
        """
        state = self._sync_start(instance_name, "StatefulSet")
        try:
            await self.delete_stateful_set(
                self.apps_v1_api,
                instance_name,
                self.namespace,
                V1DeleteOptions(propagation_policy="Foreground"),
            )
            await self.wait_for_deletion(
                lambda: self.fetch_stateful_set(
                    self.apps_v1_api, instance_name, self.namespace
                ),
                timeout=self.conf.deletion_timeout_seconds,
                interval=self.conf.deletion_poll_interval_seconds,
            )
        except Exception as ex:
            self._sync_complete(state, instance_name, "StatefulSet", "deleted", ex)
            raise
        self._sync_complete(state, instance_name, "StatefulSet", "deleted")

        selector = Labels.instance_selector(self.name, instance_name).as_str()
        for pod in await self.list_pods(
            self.core_v1_api, self.namespace, label_selector=selector
        ):
            await self.delete_pod(self.core_v1_api, pod.metadata.name, self.namespace)
        for pvc in await self.list_persistent_volume_claims(
            self.core_v1_api, self.namespace, label_selector=selector
        ):
            await self.delete_persistent_volume_claim(
                self.core_v1_api, pvc.metadata.name, self.namespace
            )
        for cm in await self.list_config_maps(
            self.core_v1_api, self.namespace, label_selector=selector
        ):
            await self.delete_config_map(self.core_v1_api, cm.metadata.name, self.namespace)
        for secret in await self.list_secrets(
            self.core_v1_api, self.namespace, label_selector=selector
        ):
            await self.delete_secret(self.core_v1_api, secret.metadata.name, self.namespace)

        self.sensor.on_instance_deleted(self.name, self.namespace, instance_name, reason)
        self.logger.info(f"Deleted instance {instance_name} ({reason})")

    def instances_to_delete(
        self, observed: ObservedInstances, writable: Optional[Instance] = None
    ) -> List[Tuple[str, str]]:
        """(instance name, reason) pairs to remove, the writable instance last."""
        want = {s.name: s.replicas for s in self.instance_sets}
        pods = [pod for instance in observed.for_cluster for pod in instance.pods]
        kept = {id(pod) for pod in pods_to_keep(pods, want)}

        doomed = []
        for instance in observed.for_cluster:
            if instance.pods:
                if not any(id(pod) in kept for pod in instance.pods):
                    reason = "scale_down" if instance.spec is not None else "set_removed"
                    doomed.append((instance.name, reason))
            elif instance.spec is None:
                doomed.append((instance.name, "set_removed"))

        if writable is not None:
            doomed.sort(key=lambda item: item[0] == writable.name)
        return doomed

    def prepare_instance_volume(
        self,
        instance_set: InstanceSetSpec,
        instance_name: str,
        role: str,
        claim_spec: Dict,
    ) -> V1PersistentVolumeClaim:
        name = (
            PostgresClusterResources.data_volume_name(instance_name)
            if role == Labels.ROLE_PGDATA
            else PostgresClusterResources.wal_volume_name(instance_name)
        )
        labels = (
            Labels.generate_instance_labels(
                self.name, instance_set.name, instance_name, self.PGCLUSTER_OPERATOR_NAME
            )
            .include_role(role)
            .as_dict()
        )
        return V1PersistentVolumeClaim(
            api_version="v1",
            kind="PersistentVolumeClaim",
            metadata=V1ObjectMeta(
                name=name,
                namespace=self.namespace,
                labels=labels,
                owner_references=[self.owner_reference()],
            ),
            spec=claim_spec,
        )

    def prepare_instance_stateful_set(
        self, instance_set: InstanceSetSpec, instance_name: str, replicas: int
    ) -> V1StatefulSet:
        labels = Labels.generate_instance_labels(
            self.name, instance_set.name, instance_name, self.PGCLUSTER_OPERATOR_NAME
        ).as_dict()
        volumes = [
            V1Volume(
                name="postgres-data",
                persistent_volume_claim=V1PersistentVolumeClaimVolumeSource(
                    claim_name=PostgresClusterResources.data_volume_name(instance_name)
                ),
            )
        ]
        mounts = [V1VolumeMount(name="postgres-data", mount_path="/pgdata")]
        if instance_set.wal_volume_claim_spec is not None:
            volumes.append(
                V1Volume(
                    name="postgres-wal",
                    persistent_volume_claim=V1PersistentVolumeClaimVolumeSource(
                        claim_name=PostgresClusterResources.wal_volume_name(instance_name)
                    ),
                )
            )
            mounts.append(V1VolumeMount(name="postgres-wal", mount_path="/pgwal"))

        container = V1Container(
            name=self.conf.database_container_name,
            image=self.image,
            ports=[V1ContainerPort(name="postgres", container_port=self.port)],
            volume_mounts=mounts,
        )
        return V1StatefulSet(
            api_version="apps/v1",
            kind="StatefulSet",
            metadata=V1ObjectMeta(
                name=instance_name,
                namespace=self.namespace,
                labels=labels,
                owner_references=[self.owner_reference()],
            ),
            spec=V1StatefulSetSpec(
                replicas=replicas,
                service_name=f"{self.name}-pods",
                selector=V1LabelSelector(
                    match_labels=Labels.instance_selector(self.name, instance_name).as_dict()
                ),
                template=V1PodTemplateSpec(
                    metadata=V1ObjectMeta(labels=labels),
                    spec=V1PodSpec(
                        service_account_name=PostgresClusterResources.instance_service_account_name(
                            self.name
                        ),
                        image_pull_secrets=self.image_pull_secrets or None,
                        affinity=instance_set.affinity,
                        tolerations=instance_set.tolerations,
                        topology_spread_constraints=instance_set.topology_spread_constraints,
                        priority_class_name=instance_set.priority_class_name,
                        containers=[container],
                        volumes=volumes,
                    ),
                ),
            ),
        )

    async def create_instance(
        self, instance_set: InstanceSetSpec, instance_name: str, num_instance_pods: int = 0
    ) -> None:
        """Create the volumes and StatefulSet of a new or resurrected instance."""
        await self.create_persistent_volume_claim(
            self.core_v1_api,
            self.namespace,
            self.prepare_instance_volume(
                instance_set,
                instance_name,
                Labels.ROLE_PGDATA,
                instance_set.data_volume_claim_spec,
            ),
        )
        if instance_set.wal_volume_claim_spec is not None:
            await self.create_persistent_volume_claim(
                self.core_v1_api,
                self.namespace,
                self.prepare_instance_volume(
                    instance_set,
                    instance_name,
                    Labels.ROLE_PGWAL,
                    instance_set.wal_volume_claim_spec,
                ),
            )

        stateful_set = self.prepare_instance_stateful_set(
            instance_set,
            instance_name,
            instance_replicas(self, instance_name, num_instance_pods),
        )
        state = self._sync_start(instance_name, "StatefulSet")
        try:
            await self.create_stateful_set(self.apps_v1_api, self.namespace, stateful_set)
        except Exception as ex:
            self._sync_complete(state, instance_name, "StatefulSet", "created", ex)
            raise
        self._sync_complete(state, instance_name, "StatefulSet", "created")
        self.logger.info(f"Created instance {instance_name} in set {instance_set.name}")

    async def scale_instance(self, instance: Instance, num_instance_pods: int) -> None:
        replicas = instance_replicas(self, instance.name, num_instance_pods)
        current = instance.runner.spec.replicas if instance.runner.spec else None
        if current == replicas:
            return
        state = self._sync_start(instance.name, "StatefulSet")
        try:
            await self.patch_stateful_set(
                self.apps_v1_api,
                instance.name,
                self.namespace,
                {"spec": {"replicas": replicas}},
            )
        except Exception as ex:
            self._sync_complete(state, instance.name, "StatefulSet", "patched", ex)
            raise
        self._sync_complete(state, instance.name, "StatefulSet", "patched")

    async def reconcile_instances(
        self,
        observed: ObservedInstances,
        volumes: List[V1PersistentVolumeClaim],
        writable: Optional[Instance] = None,
    ) -> None:
        """Bring the instances of every set to the declared replica count."""
        deleted = set()
        for instance_name, reason in self.instances_to_delete(observed, writable):
            await self.delete_instance(instance_name, reason)
            deleted.add(instance_name)

        num_pods = sum(
            len(instance.pods)
            for instance in observed.for_cluster
            if instance.name not in deleted
        )
        volumes = [
            pvc
            for pvc in volumes or []
            if ((pvc.metadata.labels if pvc.metadata else None) or {}).get(
                Labels.INSTANCE_LABEL
            )
            not in deleted
        ]

        for instance_set in self.instance_sets:
            existing = [
                instance
                for instance in observed.by_set.get(instance_set.name, [])
                if instance.name not in deleted
            ]
            for instance in existing:
                if instance.runner is not None:
                    await self.scale_instance(instance, num_pods)

            missing = instance_set.replicas - len(existing)
            if missing <= 0:
                continue
            names = next_instance_names(self, instance_set, observed, volumes, missing)
            if not num_pods and not self.status.startup_instance and names:
                # A brand new cluster: the first instance bootstraps it.
                self.status.startup_instance = names[0]
                self.status.startup_instance_set = instance_set.name
            for name in names:
                await self.create_instance(instance_set, name, num_pods)

    def instances_status(self, observed: ObservedInstances) -> List[Dict]:
        result = []
        for instance_set in self.instance_sets:
            instances = observed.by_set.get(instance_set.name, [])
            ready = sum(1 for i in instances if i.is_ready() == (True, True))
            result.append(
                {
                    "name": instance_set.name,
                    "replicas": len(instances),
                    "readyReplicas": ready,
                }
            )
        return result

    async def synchronize(self) -> ObservedInstances:
        """One reconciliation pass over the cluster instances."""
        observed, volumes = await self.observe_instances()
        writable = self.find_writable_instance(observed)

        return_early = await self.reconcile_upgrade_job(
            observed,
            self.instance_sets,
            PostgresClusterResources.instance_service_account_name(self.name),
            PostgresClusterResources.cluster_certificates_name(self.name),
            PostgresClusterResources.replication_certificates_name(self.name),
            volumes,
        )
        if return_early:
            return observed

        await self.reconcile_instances(observed, volumes, writable)
        return observed
