"""Prometheus monitoring backend for the PostgresCluster operator.

PrometheusMonitor turns sensor events into Prometheus metrics:

1. Reconciliation health - duration, throughput, errors
2. Child resource operations - counts and latency per resource type
3. Instance lifecycle - deletions and split brain detections
4. Major upgrade progress - current phase per cluster

All metrics are labelled by cluster name and namespace.
"""

from typing import Any, Dict, List, Optional
import time
import logging

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram

from pgcluster.sensors.base import OperatorSensor

logger = logging.getLogger(__name__)

UPGRADE_PHASES = (
    "Idle",
    "AwaitingTeardown",
    "Preparing",
    "Running",
    "Succeeded",
    "Failed",
)


class PrometheusMonitor(OperatorSensor):
    """Prometheus metrics monitor.

    Metrics are registered with `registry`, the process wide default registry
    unless another one is given.
    """

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        super().__init__()

        # =============================================================================
        # Reconciliation Loop Metrics
        # =============================================================================

        self.reconcile_duration = Histogram(
            'pgcluster_reconcile_duration_seconds',
            'Time spent in a reconciliation pass',
            labelnames=['cluster_name', 'namespace', 'trigger_source', 'result'],
            buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0],
            registry=registry,
        )

        self.reconcile_total = Counter(
            'pgcluster_reconcile_total',
            'Total number of reconciliation passes',
            labelnames=['cluster_name', 'namespace', 'trigger_source', 'result'],
            registry=registry,
        )

        self.reconcile_errors = Counter(
            'pgcluster_reconcile_errors_total',
            'Total number of reconciliation errors',
            labelnames=['cluster_name', 'namespace', 'error_type'],
            registry=registry,
        )

        # =============================================================================
        # Kubernetes Resource Sync Metrics
        # =============================================================================

        self.resource_sync_duration = Histogram(
            'pgcluster_resource_sync_duration_seconds',
            'Time spent on child resource operations',
            labelnames=['cluster_name', 'namespace', 'resource_type', 'operation', 'result'],
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
            registry=registry,
        )

        self.resource_sync_total = Counter(
            'pgcluster_resource_sync_total',
            'Total number of child resource operations',
            labelnames=['cluster_name', 'namespace', 'resource_type', 'operation', 'result'],
            registry=registry,
        )

        self.resource_sync_errors = Counter(
            'pgcluster_resource_sync_errors_total',
            'Total number of failed child resource operations',
            labelnames=['cluster_name', 'namespace', 'resource_type', 'error_type'],
            registry=registry,
        )

        # =============================================================================
        # Instance Metrics
        # =============================================================================

        self.instances_deleted = Counter(
            'pgcluster_instances_deleted_total',
            'Total number of deleted instances',
            labelnames=['cluster_name', 'namespace', 'reason'],
            registry=registry,
        )

        self.split_brain_detected = Counter(
            'pgcluster_split_brain_detected_total',
            'Total number of passes that observed more than one writable instance',
            labelnames=['cluster_name', 'namespace'],
            registry=registry,
        )

        self.writable_instances = Gauge(
            'pgcluster_writable_instances',
            'Number of writable instances seen by the last split brain detection',
            labelnames=['cluster_name', 'namespace'],
            registry=registry,
        )

        # =============================================================================
        # Upgrade Metrics
        # =============================================================================

        self.upgrade_phase = Gauge(
            'pgcluster_upgrade_phase',
            'Current major upgrade phase (1 for the active phase)',
            labelnames=['cluster_name', 'namespace', 'phase'],
            registry=registry,
        )

        # =============================================================================
        # Status Update Metrics
        # =============================================================================

        self.status_updates = Counter(
            'pgcluster_status_updates_total',
            'Total number of status updates',
            labelnames=['cluster_name', 'namespace', 'update_field'],
            registry=registry,
        )

        logger.info("PrometheusMonitor initialized with all metrics")

    # =============================================================================
    # Reconciliation Lifecycle Hooks
    # =============================================================================

    def on_reconcile_start(
        self,
        cluster_name: str,
        namespace: str,
        generation: int,
        trigger_source: str,
    ) -> Optional[Dict[str, Any]]:
        """Record reconciliation start time."""
        return {
            'start_time': time.time(),
            'trigger_source': trigger_source,
        }

    def on_reconcile_complete(
        self,
        cluster_name: str,
        namespace: str,
        state: Optional[Dict[str, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        """Record reconciliation duration and result."""
        if state:
            duration = time.time() - state['start_time']
            result = 'success' if success else 'failure'

            self.reconcile_duration.labels(
                cluster_name=cluster_name,
                namespace=namespace,
                trigger_source=state['trigger_source'],
                result=result,
            ).observe(duration)

            self.reconcile_total.labels(
                cluster_name=cluster_name,
                namespace=namespace,
                trigger_source=state['trigger_source'],
                result=result,
            ).inc()

        if error:
            self.reconcile_errors.labels(
                cluster_name=cluster_name,
                namespace=namespace,
                error_type=error.__class__.__name__,
            ).inc()

    # =============================================================================
    # Resource Operation Hooks
    # =============================================================================

    def on_resource_sync_start(
        self,
        cluster_name: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
    ) -> Optional[Dict[str, Any]]:
        """Record resource sync start time."""
        return {'start_time': time.time()}

    def on_resource_sync_complete(
        self,
        cluster_name: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
        state: Optional[Dict[str, Any]],
        operation: str,
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        """Record resource sync duration and result."""
        result = 'success' if success else 'failure'
        if state:
            self.resource_sync_duration.labels(
                cluster_name=cluster_name,
                namespace=namespace,
                resource_type=resource_type,
                operation=operation,
                result=result,
            ).observe(time.time() - state['start_time'])

        self.resource_sync_total.labels(
            cluster_name=cluster_name,
            namespace=namespace,
            resource_type=resource_type,
            operation=operation,
            result=result,
        ).inc()

        if error:
            self.resource_sync_errors.labels(
                cluster_name=cluster_name,
                namespace=namespace,
                resource_type=resource_type,
                error_type=error.__class__.__name__,
            ).inc()

    # =============================================================================
    # Instance Lifecycle Hooks
    # =============================================================================

    def on_instance_deleted(
        self,
        cluster_name: str,
        namespace: str,
        instance_name: str,
        reason: str,
    ) -> None:
        self.instances_deleted.labels(
            cluster_name=cluster_name,
            namespace=namespace,
            reason=reason,
        ).inc()

    def on_split_brain_detected(
        self,
        cluster_name: str,
        namespace: str,
        instance_names: List[str],
    ) -> None:
        self.split_brain_detected.labels(
            cluster_name=cluster_name,
            namespace=namespace,
        ).inc()
        self.writable_instances.labels(
            cluster_name=cluster_name,
            namespace=namespace,
        ).set(len(instance_names))

    # =============================================================================
    # Upgrade Hooks
    # =============================================================================

    def on_upgrade_phase(self, cluster_name: str, namespace: str, phase: str) -> None:
        """Set the gauge of the active phase to 1 and every other phase to 0."""
        for known in UPGRADE_PHASES:
            self.upgrade_phase.labels(
                cluster_name=cluster_name,
                namespace=namespace,
                phase=known,
            ).set(1 if known == phase else 0)

    # =============================================================================
    # Status Update Hooks
    # =============================================================================

    def on_status_update(
        self,
        cluster_name: str,
        namespace: str,
        update_fields: List[str],
    ) -> None:
        """Record status update."""
        for field in update_fields:
            self.status_updates.labels(
                cluster_name=cluster_name,
                namespace=namespace,
                update_field=field,
            ).inc()
