"""Base sensor class for operator monitoring.

All hooks are no-ops so sensors only override the events they care about.
"""

from typing import Any, Dict, List, Optional


class OperatorSensor:
    """Base sensor class for PostgresCluster operator monitoring.

    Hooks fall in four groups:
    1. Reconciliation lifecycle (one full pass over a cluster)
    2. Resource operations (child resources created, scaled or deleted)
    3. Instance lifecycle (instances removed, split brain)
    4. Major version upgrade phases
    """

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
        """Called when a reconciliation pass begins.

        Args:
            cluster_name: PostgresCluster resource name
            namespace: Kubernetes namespace
            generation: Resource generation number
            trigger_source: What triggered reconciliation (create, update, timer, etc.)

        Returns:
            Optional state dict passed to on_reconcile_complete
        """
        pass

    def on_reconcile_complete(
        self,
        cluster_name: str,
        namespace: str,
        state: Optional[Dict[str, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        """Called when a reconciliation pass completes.

        Args:
            cluster_name: PostgresCluster resource name
            namespace: Kubernetes namespace
            state: State dict returned from on_reconcile_start
            success: Whether reconciliation succeeded
            error: Exception if reconciliation failed
        """
        pass

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
        """Called before a child resource is created, patched or deleted.

        Returns:
            Optional state dict passed to on_resource_sync_complete
        """
        pass

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
        """Called after a child resource operation.

        Args:
            operation: Operation performed (created, patched, deleted)
        """
        pass

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
        """Called when an instance and its volumes are removed.

        Args:
            reason: Why the instance was removed (scale_down, set_removed)
        """
        pass

    def on_split_brain_detected(
        self,
        cluster_name: str,
        namespace: str,
        instance_names: List[str],
    ) -> None:
        """Called when more than one instance reports itself writable."""
        pass

    # =============================================================================
    # Upgrade Hooks
    # =============================================================================

    def on_upgrade_phase(
        self,
        cluster_name: str,
        namespace: str,
        phase: str,
    ) -> None:
        """Called once per pass with the observed major upgrade phase."""
        pass

    # =============================================================================
    # Status Update Hooks
    # =============================================================================

    def on_status_update(
        self,
        cluster_name: str,
        namespace: str,
        update_fields: List[str],
    ) -> None:
        """Called when status is patched with the given top level fields."""
        pass

    def asdict(self) -> Dict[str, Any]:
        """Return sensor state as dictionary."""
        return {}
