"""Unit tests for PostgresCluster instance reconciliation."""

import asyncio
import kopf
import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch
from kubernetes_asyncio.client import (
    ApiException,
    V1ConfigMap,
    V1ObjectMeta,
    V1PersistentVolumeClaim,
    V1Secret,
)
from pgcluster.common.models.labels import Labels
from pgcluster.resources.instance import new_observed_instances
from pgcluster.resources.postgrescluster import PostgresCluster
from pgcluster.sensors import OperatorSensor
from pgcluster.types.schemas.postgrescluster_spec import PostgresClusterSpecSchema
from pgcluster.types.settings import Settings
from pgcluster.utils.errors import DeletionTimeoutError

CLAIM = {"accessModes": ["ReadWriteOnce"], "resources": {"requests": {"storage": "1Gi"}}}


def items(*objs):
    return SimpleNamespace(items=list(objs))


@pytest.fixture
def make_cluster():
    def _make_cluster(replicas=1, wal=False, status=None, shutdown=False, sensor=None):
        instance_set = {"name": "00", "replicas": replicas, "dataVolumeClaimSpec": CLAIM}
        if wal:
            instance_set["walVolumeClaimSpec"] = CLAIM
        spec = PostgresClusterSpecSchema().load(
            {
                "image": "postgres:16",
                "postgresVersion": 16,
                "shutdown": shutdown,
                "instances": [instance_set],
            }
        )
        cluster = PostgresCluster.from_spec(
            "hippo",
            "test-namespace",
            spec,
            uid="0f9d6c8e-uid",
            generation=1,
            status=status,
            conf=Settings(
                deletion_timeout_seconds=0.01, deletion_poll_interval_seconds=0.001
            ),
            sensor=sensor or Mock(spec=OperatorSensor),
        )
        cluster._apps_v1_api = AsyncMock()
        cluster._apps_v1_api.read_namespaced_stateful_set.side_effect = ApiException(
            status=404, reason="Not Found"
        )
        cluster._core_v1_api = AsyncMock()
        cluster._core_v1_api.list_namespaced_pod.return_value = items()
        cluster._core_v1_api.list_namespaced_persistent_volume_claim.return_value = items()
        cluster._core_v1_api.list_namespaced_config_map.return_value = items()
        cluster._core_v1_api.list_namespaced_secret.return_value = items()
        cluster._batch_v1_api = AsyncMock()
        return cluster

    return _make_cluster


@pytest.fixture
def two_instances(make_pod, make_runner):
    """hippo-00-abcd (primary) and hippo-00-wxyz (replica), both running."""

    def _observed(cluster):
        runners = [
            make_runner("hippo-00-abcd", instance_set="00", replicas=1),
            make_runner("hippo-00-wxyz", instance_set="00", replicas=1),
        ]
        pods = [
            make_pod(
                "hippo-00-abcd-0",
                "00",
                "hippo-00-abcd",
                role_label="master",
                status_role="master",
                running={"database": True},
                ready=True,
            ),
            make_pod(
                "hippo-00-wxyz-0",
                "00",
                "hippo-00-wxyz",
                role_label="replica",
                status_role="replica",
                running={"database": True},
                ready=False,
            ),
        ]
        return new_observed_instances(cluster, runners, pods)

    return _observed


class TestInstancesToDelete:
    """Tests for choosing which instances go away."""

    def test_nothing_to_delete(self, make_cluster, two_instances):
        cluster = make_cluster(replicas=2)
        assert cluster.instances_to_delete(two_instances(cluster)) == []

    def test_scale_down_keeps_primary(self, make_cluster, two_instances):
        cluster = make_cluster(replicas=1)
        assert cluster.instances_to_delete(two_instances(cluster)) == [
            ("hippo-00-wxyz", "scale_down")
        ]

    def test_writable_deleted_last(self, make_cluster, two_instances):
        cluster = make_cluster(replicas=0)
        observed = two_instances(cluster)
        writable = observed.by_name["hippo-00-abcd"]
        doomed = cluster.instances_to_delete(observed, writable)
        assert doomed == [("hippo-00-wxyz", "scale_down"), ("hippo-00-abcd", "scale_down")]

    def test_removed_set(self, make_cluster, make_pod, make_runner):
        cluster = make_cluster(replicas=1)
        observed = new_observed_instances(
            cluster,
            [make_runner("hippo-99-runner", instance_set="99")],
            [make_pod("hippo-99-pods-0", "99", "hippo-99-pods")],
        )
        assert sorted(cluster.instances_to_delete(observed)) == [
            ("hippo-99-pods", "set_removed"),
            ("hippo-99-runner", "set_removed"),
        ]

    def test_runner_without_pods_is_kept(self, make_cluster, make_runner):
        cluster = make_cluster(replicas=1)
        observed = new_observed_instances(
            cluster, [make_runner("hippo-00-abcd", instance_set="00", replicas=0)], []
        )
        assert cluster.instances_to_delete(observed) == []


class TestDeleteInstance:
    """Tests for removing an instance and what belongs to it."""

    def test_deletes_statefulset_then_children(self, make_cluster):
        cluster = make_cluster()
        core = cluster._core_v1_api
        core.list_namespaced_persistent_volume_claim.return_value = items(
            V1PersistentVolumeClaim(metadata=V1ObjectMeta(name="hippo-00-wxyz-pgdata"))
        )
        core.list_namespaced_config_map.return_value = items(
            V1ConfigMap(metadata=V1ObjectMeta(name="hippo-00-wxyz-config"))
        )
        core.list_namespaced_secret.return_value = items(
            V1Secret(metadata=V1ObjectMeta(name="hippo-00-wxyz-certs"))
        )

        asyncio.run(cluster.delete_instance("hippo-00-wxyz", "scale_down"))

        kwargs = cluster._apps_v1_api.delete_namespaced_stateful_set.call_args.kwargs
        assert kwargs["name"] == "hippo-00-wxyz"
        assert kwargs["body"].propagation_policy == "Foreground"

        selector = Labels.instance_selector("hippo", "hippo-00-wxyz").as_str()
        assert (
            core.list_namespaced_persistent_volume_claim.call_args.kwargs["label_selector"]
            == selector
        )
        assert (
            core.delete_namespaced_persistent_volume_claim.call_args.kwargs["name"]
            == "hippo-00-wxyz-pgdata"
        )
        assert core.delete_namespaced_config_map.call_args.kwargs["name"] == "hippo-00-wxyz-config"
        assert core.delete_namespaced_secret.call_args.kwargs["name"] == "hippo-00-wxyz-certs"
        cluster.sensor.on_instance_deleted.assert_called_once_with(
            "hippo", "test-namespace", "hippo-00-wxyz", "scale_down"
        )

    def test_deletes_pods_of_instance_without_statefulset(self, make_cluster, make_pod):
        cluster = make_cluster(replicas=1)
        core = cluster._core_v1_api
        core.list_namespaced_pod.return_value = items(
            make_pod("hippo-99-pods-0", "99", "hippo-99-pods"),
            make_pod("hippo-99-pods-1", "99", "hippo-99-pods"),
        )
        core.delete_namespaced_pod.side_effect = [
            None,
            ApiException(status=404, reason="Not Found"),
        ]
        observed = new_observed_instances(
            cluster, [], [make_pod("hippo-99-pods-0", "99", "hippo-99-pods")]
        )

        asyncio.run(cluster.reconcile_instances(observed, []))

        selector = Labels.instance_selector("hippo", "hippo-99-pods").as_str()
        assert core.list_namespaced_pod.call_args.kwargs["label_selector"] == selector
        assert [c.kwargs["name"] for c in core.delete_namespaced_pod.call_args_list] == [
            "hippo-99-pods-0",
            "hippo-99-pods-1",
        ]
        cluster.sensor.on_instance_deleted.assert_called_once_with(
            "hippo", "test-namespace", "hippo-99-pods", "set_removed"
        )

    def test_waits_for_statefulset(self, make_cluster, make_runner):
        cluster = make_cluster()
        cluster._apps_v1_api.read_namespaced_stateful_set.side_effect = [
            make_runner("hippo-00-wxyz"),
            make_runner("hippo-00-wxyz"),
            ApiException(status=404, reason="Not Found"),
        ]
        cluster.conf.deletion_timeout_seconds = 5.0

        asyncio.run(cluster.delete_instance("hippo-00-wxyz"))

        assert cluster._apps_v1_api.read_namespaced_stateful_set.await_count == 3
        cluster._core_v1_api.list_namespaced_persistent_volume_claim.assert_awaited_once()

    def test_timeout_leaves_volumes(self, make_cluster, make_runner):
        cluster = make_cluster()
        cluster._apps_v1_api.read_namespaced_stateful_set.side_effect = None
        cluster._apps_v1_api.read_namespaced_stateful_set.return_value = make_runner(
            "hippo-00-wxyz"
        )

        with pytest.raises(DeletionTimeoutError) as exc_info:
            asyncio.run(cluster.delete_instance("hippo-00-wxyz"))

        assert isinstance(exc_info.value, kopf.TemporaryError)
        cluster._core_v1_api.list_namespaced_persistent_volume_claim.assert_not_awaited()
        cluster._core_v1_api.delete_namespaced_persistent_volume_claim.assert_not_awaited()
        cluster.sensor.on_instance_deleted.assert_not_called()


class TestReconcileInstances:
    """Tests for creating and scaling instances."""

    def _created_names(self, cluster):
        return [
            c.kwargs["body"].metadata.name
            for c in cluster._apps_v1_api.create_namespaced_stateful_set.call_args_list
        ]

    def test_new_cluster(self, make_cluster):
        cluster = make_cluster(replicas=2)
        observed = new_observed_instances(cluster, [], [])

        asyncio.run(cluster.reconcile_instances(observed, []))

        calls = cluster._apps_v1_api.create_namespaced_stateful_set.call_args_list
        assert len(calls) == 2
        first, second = [c.kwargs["body"] for c in calls]
        assert cluster.status.startup_instance == first.metadata.name
        assert cluster.status.startup_instance_set == "00"
        assert first.spec.replicas == 1
        assert second.spec.replicas == 0
        assert first.metadata.owner_references[0].uid == "0f9d6c8e-uid"
        assert first.metadata.labels[Labels.INSTANCE_SET_LABEL] == "00"
        assert first.metadata.labels[Labels.INSTANCE_LABEL] == first.metadata.name
        assert first.spec.template.spec.containers[0].name == "database"

        pvcs = [
            c.kwargs["body"]
            for c in cluster._core_v1_api.create_namespaced_persistent_volume_claim.call_args_list
        ]
        assert len(pvcs) == 2
        assert pvcs[0].metadata.name == f"{first.metadata.name}-pgdata"
        assert pvcs[0].metadata.labels[Labels.ROLE_LABEL] == Labels.ROLE_PGDATA

    def test_wal_volumes(self, make_cluster):
        cluster = make_cluster(replicas=1, wal=True)
        asyncio.run(cluster.reconcile_instances(new_observed_instances(cluster, [], []), []))
        roles = [
            c.kwargs["body"].metadata.labels[Labels.ROLE_LABEL]
            for c in cluster._core_v1_api.create_namespaced_persistent_volume_claim.call_args_list
        ]
        assert roles == [Labels.ROLE_PGDATA, Labels.ROLE_PGWAL]

    def test_reuses_volumes(self, make_cluster, make_volume):
        cluster = make_cluster(replicas=1)
        volumes = [make_volume("hippo-00-old1-pgdata", Labels.ROLE_PGDATA, "00", "hippo-00-old1")]

        asyncio.run(
            cluster.reconcile_instances(new_observed_instances(cluster, [], []), volumes)
        )

        assert self._created_names(cluster) == ["hippo-00-old1"]

    def test_existing_pvc_is_reused(self, make_cluster):
        cluster = make_cluster(replicas=1)
        cluster._core_v1_api.create_namespaced_persistent_volume_claim.side_effect = ApiException(
            status=409, reason="Conflict"
        )
        cluster._core_v1_api.create_namespaced_persistent_volume_claim.side_effect.body = (
            '{"reason": "AlreadyExists"}'
        )
        asyncio.run(cluster.reconcile_instances(new_observed_instances(cluster, [], []), []))
        assert len(self._created_names(cluster)) == 1

    def test_in_sync(self, make_cluster, two_instances):
        cluster = make_cluster(replicas=2)
        asyncio.run(cluster.reconcile_instances(two_instances(cluster), []))
        cluster._apps_v1_api.create_namespaced_stateful_set.assert_not_awaited()
        cluster._apps_v1_api.patch_namespaced_stateful_set.assert_not_awaited()
        cluster._apps_v1_api.delete_namespaced_stateful_set.assert_not_awaited()

    def test_scale_up(self, make_cluster, two_instances):
        cluster = make_cluster(replicas=3)
        asyncio.run(cluster.reconcile_instances(two_instances(cluster), []))
        names = self._created_names(cluster)
        assert len(names) == 1
        assert names[0] not in ("hippo-00-abcd", "hippo-00-wxyz")
        assert cluster.status.startup_instance == ""

    def test_scale_down_deletes_replica(self, make_cluster, two_instances):
        cluster = make_cluster(replicas=1)
        observed = two_instances(cluster)
        writable = observed.by_name["hippo-00-abcd"]

        asyncio.run(cluster.reconcile_instances(observed, [], writable))

        kwargs = cluster._apps_v1_api.delete_namespaced_stateful_set.call_args.kwargs
        assert kwargs["name"] == "hippo-00-wxyz"
        cluster._apps_v1_api.create_namespaced_stateful_set.assert_not_awaited()

    def test_scales_runner_to_intent(self, make_cluster, make_runner):
        cluster = make_cluster(replicas=1)
        observed = new_observed_instances(
            cluster, [make_runner("hippo-00-abcd", instance_set="00", replicas=0)], []
        )

        asyncio.run(cluster.reconcile_instances(observed, []))

        kwargs = cluster._apps_v1_api.patch_namespaced_stateful_set.call_args.kwargs
        assert kwargs["name"] == "hippo-00-abcd"
        assert kwargs["body"] == {"spec": {"replicas": 1}}

    def test_shutdown_stops_instances(self, make_cluster, two_instances):
        cluster = make_cluster(
            replicas=2, shutdown=True, status={"startupInstance": "hippo-00-abcd"}
        )
        asyncio.run(cluster.reconcile_instances(two_instances(cluster), []))
        patched = {
            c.kwargs["name"]: c.kwargs["body"]["spec"]["replicas"]
            for c in cluster._apps_v1_api.patch_namespaced_stateful_set.call_args_list
        }
        assert patched == {"hippo-00-wxyz": 0}

    def test_shutdown_stops_startup_instance_last(self, make_cluster, make_pod, make_runner):
        cluster = make_cluster(
            replicas=2, shutdown=True, status={"startupInstance": "hippo-00-abcd"}
        )
        observed = new_observed_instances(
            cluster,
            [
                make_runner("hippo-00-abcd", instance_set="00", replicas=1),
                make_runner("hippo-00-wxyz", instance_set="00", replicas=0),
            ],
            [make_pod("hippo-00-abcd-0", "00", "hippo-00-abcd", role_label="master")],
        )

        asyncio.run(cluster.reconcile_instances(observed, []))

        kwargs = cluster._apps_v1_api.patch_namespaced_stateful_set.call_args.kwargs
        assert kwargs["name"] == "hippo-00-abcd"
        assert kwargs["body"] == {"spec": {"replicas": 0}}
        cluster._apps_v1_api.patch_namespaced_stateful_set.assert_awaited_once()

    def test_member_started_once_startup_instance_has_pod(
        self, make_cluster, make_pod, make_runner
    ):
        cluster = make_cluster(replicas=2, status={"startupInstance": "hippo-00-abcd"})
        observed = new_observed_instances(
            cluster,
            [
                make_runner("hippo-00-abcd", instance_set="00", replicas=1),
                make_runner("hippo-00-wxyz", instance_set="00", replicas=0),
            ],
            [make_pod("hippo-00-abcd-0", "00", "hippo-00-abcd", role_label="master")],
        )

        asyncio.run(cluster.reconcile_instances(observed, []))

        kwargs = cluster._apps_v1_api.patch_namespaced_stateful_set.call_args.kwargs
        assert kwargs["name"] == "hippo-00-wxyz"
        assert kwargs["body"] == {"spec": {"replicas": 1}}
        cluster._apps_v1_api.patch_namespaced_stateful_set.assert_awaited_once()

    def test_member_waits_for_startup_instance(self, make_cluster, make_runner):
        cluster = make_cluster(replicas=2, status={"startupInstance": "hippo-00-abcd"})
        observed = new_observed_instances(
            cluster,
            [
                make_runner("hippo-00-abcd", instance_set="00", replicas=1),
                make_runner("hippo-00-wxyz", instance_set="00", replicas=0),
            ],
            [],
        )

        asyncio.run(cluster.reconcile_instances(observed, []))

        cluster._apps_v1_api.patch_namespaced_stateful_set.assert_not_awaited()

    def test_scale_up_starts_new_member(self, make_cluster, two_instances):
        cluster = make_cluster(replicas=3, status={"startupInstance": "hippo-00-abcd"})

        asyncio.run(cluster.reconcile_instances(two_instances(cluster), []))

        calls = cluster._apps_v1_api.create_namespaced_stateful_set.call_args_list
        assert len(calls) == 1
        assert calls[0].kwargs["body"].spec.replicas == 1
        assert cluster.status.startup_instance == "hippo-00-abcd"


class TestObservation:
    """Tests for observing instances and reporting them."""

    def test_observe_instances(self, make_cluster, make_runner, make_pod, make_volume):
        cluster = make_cluster()
        runner = make_runner("hippo-00-abcd", instance_set="00", replicas=1)
        pod = make_pod("hippo-00-abcd-0", "00", "hippo-00-abcd")
        volume = make_volume("v", Labels.ROLE_PGDATA, "00", "hippo-00-abcd")
        cluster._apps_v1_api.list_namespaced_stateful_set.return_value = items(runner)
        cluster._core_v1_api.list_namespaced_pod.return_value = items(pod)
        cluster._core_v1_api.list_namespaced_persistent_volume_claim.return_value = items(volume)

        observed, volumes = asyncio.run(cluster.observe_instances())

        assert observed.by_name["hippo-00-abcd"].runner is runner
        assert observed.by_name["hippo-00-abcd"].pods == [pod]
        assert volumes == [volume]
        selector = cluster._core_v1_api.list_namespaced_pod.call_args.kwargs["label_selector"]
        assert selector == Labels.cluster_instances_selector("hippo")

    def test_split_brain_reported(self, make_cluster, make_pod):
        cluster = make_cluster()
        pods = [
            make_pod("a-0", "00", "hippo-00-aaaa", status_role="master", running={"database": True}),
            make_pod("b-0", "00", "hippo-00-bbbb", status_role="master", running={"database": True}),
        ]
        observed = new_observed_instances(cluster, [], pods)

        writable = cluster.find_writable_instance(observed)

        assert writable.name == "hippo-00-aaaa"
        cluster.sensor.on_split_brain_detected.assert_called_once_with(
            "hippo", "test-namespace", ["hippo-00-aaaa", "hippo-00-bbbb"]
        )

    def test_single_writable(self, make_cluster, two_instances):
        cluster = make_cluster()
        writable = cluster.find_writable_instance(two_instances(cluster))
        assert writable.name == "hippo-00-abcd"
        cluster.sensor.on_split_brain_detected.assert_not_called()

    def test_instances_status(self, make_cluster, two_instances):
        cluster = make_cluster(replicas=2)
        assert cluster.instances_status(two_instances(cluster)) == [
            {"name": "00", "replicas": 2, "readyReplicas": 1}
        ]


class TestSynchronize:
    """Tests for one reconciliation pass."""

    def test_upgrade_blocks_instances(self, make_cluster):
        cluster = make_cluster()
        cluster._apps_v1_api.list_namespaced_stateful_set.return_value = items()
        cluster._core_v1_api.list_namespaced_pod.return_value = items()
        with patch.object(
            cluster, "reconcile_upgrade_job", AsyncMock(return_value=True)
        ), patch.object(cluster, "reconcile_instances", AsyncMock()) as reconcile_instances:
            asyncio.run(cluster.synchronize())
        reconcile_instances.assert_not_awaited()

    def test_instances_reconciled(self, make_cluster):
        cluster = make_cluster()
        cluster._apps_v1_api.list_namespaced_stateful_set.return_value = items()
        cluster._core_v1_api.list_namespaced_pod.return_value = items()
        with patch.object(cluster, "reconcile_instances", AsyncMock()) as reconcile_instances:
            observed = asyncio.run(cluster.synchronize())
        reconcile_instances.assert_awaited_once_with(observed, [], None)
