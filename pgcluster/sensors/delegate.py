"""Sensor delegation for fan-out pattern.

SensorDelegate routes every sensor event to any number of monitoring backends.
Each backend keeps its own state, and a failing backend never breaks the
reconciliation that reported the event.
"""

from typing import Any, Dict, List, Optional, Set
import logging

from pgcluster.sensors.base import OperatorSensor

logger = logging.getLogger(__name__)


class SensorDelegate(OperatorSensor):
    """Delegate sensor that fans out events to multiple backends.

    Example:
        delegate = SensorDelegate()
        delegate.add(PrometheusMonitor())

        state = delegate.on_reconcile_start("hippo", "default", 5, "timer")
        delegate.on_reconcile_complete("hippo", "default", state, True)
    """

    def __init__(self) -> None:
        self._sensors: Set[OperatorSensor] = set()

    def add(self, sensor: OperatorSensor) -> None:
        logger.info(f"Adding sensor: {sensor.__class__.__name__}")
        self._sensors.add(sensor)

    def remove(self, sensor: OperatorSensor) -> None:
        logger.info(f"Removing sensor: {sensor.__class__.__name__}")
        self._sensors.discard(sensor)

    def clear(self) -> None:
        logger.info(f"Clearing {len(self._sensors)} sensors")
        self._sensors.clear()

    def __len__(self) -> int:
        return len(self._sensors)

    def _dispatch(self, hook: str, *args, **kwargs) -> Dict[OperatorSensor, Any]:
        results = {}
        for sensor in self._sensors:
            try:
                result = getattr(sensor, hook)(*args, **kwargs)
                if result is not None:
                    results[sensor] = result
            except Exception as e:
                logger.error(
                    f"Error in {sensor.__class__.__name__}.{hook}: {e}",
                    exc_info=True,
                )
        return results

    def _dispatch_with_state(
        self, hook: str, state: Optional[Dict[OperatorSensor, Any]], *args, **kwargs
    ) -> None:
        for sensor in self._sensors:
            try:
                sensor_state = state.get(sensor) if state else None
                getattr(sensor, hook)(*args, state=sensor_state, **kwargs)
            except Exception as e:
                logger.error(
                    f"Error in {sensor.__class__.__name__}.{hook}: {e}",
                    exc_info=True,
                )

    # =============================================================================
    # Reconciliation Lifecycle Hooks
    # =============================================================================

    def on_reconcile_start(
        self,
        cluster_name: str,
        namespace: str,
        generation: int,
        trigger_source: str,
    ) -> Optional[Dict[OperatorSensor, Any]]:
        """Delegate reconcile_start to all sensors.

        Returns:
            Dict mapping each sensor to its returned state, or None if no sensors
        """
        states = self._dispatch(
            "on_reconcile_start", cluster_name, namespace, generation, trigger_source
        )
        return states or None

    def on_reconcile_complete(
        self,
        cluster_name: str,
        namespace: str,
        state: Optional[Dict[OperatorSensor, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        self._dispatch_with_state(
            "on_reconcile_complete",
            state,
            cluster_name=cluster_name,
            namespace=namespace,
            success=success,
            error=error,
        )

    # =============================================================================
    # Resource Operation Hooks
    # =============================================================================

    def on_resource_sync_start(
        self,
        cluster_name: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
    ) -> Optional[Dict[OperatorSensor, Any]]:
        states = self._dispatch(
            "on_resource_sync_start", cluster_name, resource_name, namespace, resource_type
        )
        return states or None

    def on_resource_sync_complete(
        self,
        cluster_name: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
        state: Optional[Dict[OperatorSensor, Any]],
        operation: str,
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        self._dispatch_with_state(
            "on_resource_sync_complete",
            state,
            cluster_name=cluster_name,
            resource_name=resource_name,
            namespace=namespace,
            resource_type=resource_type,
            operation=operation,
            success=success,
            error=error,
        )

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
        self._dispatch("on_instance_deleted", cluster_name, namespace, instance_name, reason)

    def on_split_brain_detected(
        self,
        cluster_name: str,
        namespace: str,
        instance_names: List[str],
    ) -> None:
        self._dispatch("on_split_brain_detected", cluster_name, namespace, instance_names)

    # =============================================================================
    # Upgrade Hooks
    # =============================================================================

    def on_upgrade_phase(self, cluster_name: str, namespace: str, phase: str) -> None:
        self._dispatch("on_upgrade_phase", cluster_name, namespace, phase)

    # =============================================================================
    # Status Update Hooks
    # =============================================================================

    def on_status_update(
        self,
        cluster_name: str,
        namespace: str,
        update_fields: List[str],
    ) -> None:
        self._dispatch("on_status_update", cluster_name, namespace, update_fields)

    def asdict(self) -> Dict[str, Any]:
        """Return aggregated state from all sensors.

        Returns:
            Dict mapping sensor class name to its state dict
        """
        return {
            sensor.__class__.__name__: sensor.asdict()
            for sensor in self._sensors
        }
