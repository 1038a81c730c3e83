"""Operator sensor framework.

Sensors instrument operator lifecycle events through hooks. Hooks that span
an operation come in pairs: the ``*_start`` hook returns a state dict that is
handed back to the matching ``*_complete`` hook.

Usage:
    from pgcluster.sensors import OperatorSensor, SensorDelegate

    class LoggingSensor(OperatorSensor):
        def on_instance_deleted(self, cluster_name, namespace, instance_name, reason):
            logger.info("deleted %s (%s)", instance_name, reason)

    delegate = SensorDelegate()
    delegate.add(LoggingSensor())
    delegate.add(PrometheusMonitor())
"""

from pgcluster.sensors.base import OperatorSensor
from pgcluster.sensors.delegate import SensorDelegate
from pgcluster.sensors.prometheus import PrometheusMonitor
from pgcluster.sensors.server import init_metrics_server

__all__ = [
    'OperatorSensor',
    'SensorDelegate',
    'PrometheusMonitor',
    'init_metrics_server',
]
