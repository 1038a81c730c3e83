import asyncio
import kopf
from logging import Logger
from collections import defaultdict
from typing import Dict, Tuple
from marshmallow import ValidationError
from kubernetes_asyncio.client import ApiException
from pgcluster.types.schemas.postgrescluster_spec import PostgresClusterSpecSchema
from pgcluster.types.models import PostgresClusterSpec
from pgcluster.types.settings import Settings, RECONCILE_INTERVAL_SECONDS
from pgcluster.resources import PostgresCluster
from pgcluster.utils.helpers import upsert_condition
from pgcluster.utils.errors import convert_api_exception

KIND = "PostgresCluster"

# One pass at a time per cluster; timers run alongside change handlers.
reconciliation_locks: Dict[Tuple[str, str], asyncio.Lock] = defaultdict(asyncio.Lock)


def on_error(error, spec, meta, status, patch, **_):
    """Handle errors during reconciliation."""
    gen = meta.get("generation", 0)
    conds = (status or {}).get("conditions", [])
    conds = upsert_condition(
        conds,
        {
            "type": "Progressing",
            "status": "False",
            "reason": "Error",
            "message": str(error) if error else "Reconcile failed; see events/logs",
            "observedGeneration": gen,
        },
    )
    conds = upsert_condition(
        conds,
        {
            "type": "Ready",
            "status": "False",
            "reason": "Error",
            "message": "Postgres cluster not ready",
            "observedGeneration": gen,
        },
    )
    patch.status["conditions"] = conds


def load_cluster(
    name, namespace, spec, meta, status, annotations, memo, logger: Logger
) -> PostgresCluster:
    try:
        spec_model: PostgresClusterSpec = PostgresClusterSpecSchema().load(dict(spec))
    except ValidationError as e:
        raise kopf.PermanentError(f"Invalid {KIND} spec: {e.messages}")
    return PostgresCluster.from_spec(
        name,
        namespace,
        spec_model,
        uid=meta.get("uid"),
        generation=meta.get("generation", 0),
        status=status,
        annotations=annotations,
        api_client=getattr(memo, "api_client", None),
        conf=getattr(memo, "conf", None) or Settings(),
        sensor=getattr(memo, "sensor", None),
        logger=logger,
    )


async def reconcile(
    name,
    namespace,
    spec,
    meta,
    status,
    patch,
    annotations,
    memo,
    logger: Logger,
    trigger_source: str = "manual",
    **kwargs,
):
    """Reconcile the PostgresCluster."""
    sensor = getattr(memo, "sensor", None)
    generation = meta.get("generation", 0)
    sensor_state = None
    if sensor:
        sensor_state = sensor.on_reconcile_start(name, namespace, generation, trigger_source)

    success = True
    error = None
    try:
        async with reconciliation_locks[(namespace, name)]:
            cluster = load_cluster(
                name, namespace, spec, meta, status, annotations, memo, logger
            )
            logger.debug(f"Reconciling {KIND}/{name} in {namespace} namespace.")
            observed = await cluster.synchronize()
            logger.debug(f"Reconciled {KIND}/{name} in {namespace} namespace.")

            status_update = cluster.status.as_patch()
            status_update["observedGeneration"] = generation
            status_update["instances"] = cluster.instances_status(observed)
            patch.status.update(status_update)
            if sensor:
                sensor.on_status_update(name, namespace, list(status_update.keys()))
    except kopf.PermanentError as e:
        success, error = False, e
        on_error(e, spec, meta, status, patch)
        raise
    except kopf.TemporaryError as e:
        success, error = False, e
        logger.warning(f"Reconciliation will be retried: {e}")
        on_error(e, spec, meta, status, patch)
        raise
    except ApiException as e:
        success, error = False, e
        logger.error(f"Kubernetes API error during reconciliation: {e.status} {e.reason}")
        on_error(e.reason, spec, meta, status, patch)
        convert_api_exception(e)
    except Exception as e:
        success, error = False, e
        logger.error(f"Unexpected error during reconcilation: {e}")
        logger.exception(e)
        on_error(e, spec, meta, status, patch)
        raise kopf.TemporaryError(str(e), delay=30)
    finally:
        if sensor:
            sensor.on_reconcile_complete(name, namespace, sensor_state, success, error)


@kopf.on.resume(kind=KIND)
@kopf.on.create(kind=KIND)
async def on_create(
    spec, name, meta, status, patch, namespace, annotations, memo, logger: Logger, **kwargs
):
    """Create the instances of a PostgresCluster."""
    await reconcile(
        name,
        namespace,
        spec,
        meta,
        status,
        patch,
        annotations,
        memo,
        logger,
        trigger_source="create",
    )


@kopf.on.update(kind=KIND, field="spec")
async def on_spec_update(
    spec, name, meta, status, patch, namespace, annotations, memo, logger: Logger, **kwargs
):
    """Bring the cluster in line with an updated spec."""
    await reconcile(
        name,
        namespace,
        spec,
        meta,
        status,
        patch,
        annotations,
        memo,
        logger,
        trigger_source="update",
    )


@kopf.timer(KIND, initial_delay=5.0, interval=RECONCILE_INTERVAL_SECONDS, backoff=10.0)
async def periodic_reconciliation(
    spec, name, meta, status, patch, namespace, annotations, memo, logger: Logger, **kwargs
):
    """Full sync."""
    await reconcile(
        name,
        namespace,
        spec,
        meta,
        status,
        patch,
        annotations,
        memo,
        logger,
        trigger_source="timer",
    )


@kopf.on.delete(kind=KIND)
async def on_delete(name, namespace, logger: Logger, **kwargs):
    """Handle deletion of PostgresCluster resources.

    Child resources carry an owner reference and are garbage collected.
    """
    reconciliation_locks.pop((namespace, name), None)
    logger.info(f"{KIND}/{name} deleted from {namespace} namespace.")
