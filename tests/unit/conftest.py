"""Shared fixtures building Kubernetes objects for instance tests."""

import json
import pytest
from datetime import datetime, timezone
from kubernetes_asyncio.client import (
    V1ContainerState,
    V1ContainerStateRunning,
    V1ContainerStateWaiting,
    V1ContainerStatus,
    V1ObjectMeta,
    V1PersistentVolumeClaim,
    V1Pod,
    V1PodCondition,
    V1PodStatus,
    V1StatefulSet,
    V1StatefulSetSpec,
    V1LabelSelector,
    V1PodTemplateSpec,
)
from pgcluster.common.models.labels import Labels
from pgcluster.common.models.role import STATUS_ANNOTATION


def _container_status(name: str, running: bool) -> V1ContainerStatus:
    state = (
        V1ContainerState(running=V1ContainerStateRunning())
        if running
        else V1ContainerState(waiting=V1ContainerStateWaiting(reason="PodInitializing"))
    )
    return V1ContainerStatus(
        name=name,
        image="postgres",
        image_id="postgres@sha256:abc",
        ready=running,
        restart_count=0,
        state=state,
    )


@pytest.fixture
def make_pod():
    """Factory for instance pods."""

    def _make_pod(
        name: str = "pod",
        instance_set: str = None,
        instance: str = None,
        role_label: str = None,
        status_role: str = None,
        status_annotation: str = None,
        running: dict = None,
        init_running: dict = None,
        ready: bool = None,
        terminating: bool = False,
    ) -> V1Pod:
        labels = {}
        if instance_set is not None:
            labels[Labels.INSTANCE_SET_LABEL] = instance_set
        if instance is not None:
            labels[Labels.INSTANCE_LABEL] = instance
        if role_label is not None:
            labels[Labels.ROLE_LABEL] = role_label

        annotations = {}
        if status_role is not None:
            annotations[STATUS_ANNOTATION] = json.dumps({"role": status_role})
        if status_annotation is not None:
            annotations[STATUS_ANNOTATION] = status_annotation

        status = V1PodStatus(
            container_statuses=[
                _container_status(c, r) for c, r in (running or {}).items()
            ]
            or None,
            init_container_statuses=[
                _container_status(c, r) for c, r in (init_running or {}).items()
            ]
            or None,
            conditions=(
                [V1PodCondition(type="Ready", status="True" if ready else "False")]
                if ready is not None
                else None
            ),
        )
        return V1Pod(
            metadata=V1ObjectMeta(
                name=name,
                labels=labels,
                annotations=annotations or None,
                deletion_timestamp=datetime.now(timezone.utc) if terminating else None,
            ),
            status=status,
        )

    return _make_pod


@pytest.fixture
def make_runner():
    """Factory for instance StatefulSets."""

    def _make_runner(name: str = "", instance_set: str = None, replicas: int = None):
        labels = {}
        if instance_set is not None:
            labels[Labels.INSTANCE_SET_LABEL] = instance_set
        spec = None
        if replicas is not None:
            spec = V1StatefulSetSpec(
                replicas=replicas,
                service_name="pods",
                selector=V1LabelSelector(),
                template=V1PodTemplateSpec(),
            )
        return V1StatefulSet(metadata=V1ObjectMeta(name=name, labels=labels), spec=spec)

    return _make_runner


@pytest.fixture
def make_volume():
    """Factory for instance PersistentVolumeClaims."""

    def _make_volume(
        name: str = "", role: str = None, instance_set: str = None, instance: str = None
    ) -> V1PersistentVolumeClaim:
        labels = {}
        if role is not None:
            labels[Labels.ROLE_LABEL] = role
        if instance_set is not None:
            labels[Labels.INSTANCE_SET_LABEL] = instance_set
        if instance is not None:
            labels[Labels.INSTANCE_LABEL] = instance
        return V1PersistentVolumeClaim(metadata=V1ObjectMeta(name=name, labels=labels))

    return _make_volume
