import asyncio
import hashlib
import time
import mmh3
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
from pgcluster.utils.helpers import canonicalize_dict
from pgcluster.utils.errors import already_exists_error, DeletionTimeoutError
from kubernetes_asyncio.client import (
    ApiException,
    AppsV1Api,
    BatchV1Api,
    CoreV1Api,
    V1ConfigMap,
    V1DeleteOptions,
    V1Endpoints,
    V1Job,
    V1PersistentVolumeClaim,
    V1Pod,
    V1Secret,
    V1StatefulSet,
)


class BaseResource:
    """Base resource model."""

    PGCLUSTER_OPERATOR_NAME = "pgcluster-operator"
    HASH_ANNOTATION = "pgcluster.io/resource-hash"

    def compute_hash(self, data: Any) -> str:
        """Compute a murmur3 hash."""
        if isinstance(data, dict):
            _data = canonicalize_dict(data)
        elif isinstance(data, str):
            _data = data.encode()
        else:
            raise ValueError(f"Hash of {type(data)} is not supported.")
        mumur_str = str(mmh3.hash128(_data))

        hash_obj = hashlib.sha256(mumur_str.encode("utf-8"))
        full_hash = hash_obj.hexdigest()

        # Short enough for labels and annotations
        return full_hash[:16]

    def prepare_hash_annotation(self, hash: Union[str, int]) -> Dict[str, str]:
        """Prepare hash annotation for k8s resources."""
        return {self.HASH_ANNOTATION: str(hash)}

    async def wait_for_deletion(
        self,
        read: Callable[[], Awaitable[Optional[Any]]],
        timeout: float,
        interval: float = 1.0,
    ) -> None:
        """Poll `read` until it returns None.

        Raises:
            DeletionTimeoutError: the resource still exists after `timeout` seconds.
        """
        deadline = time.monotonic() + timeout
        while True:
            if await read() is None:
                return
            if time.monotonic() >= deadline:
                raise DeletionTimeoutError(
                    f"Resource still present after {timeout} seconds", delay=interval
                )
            await asyncio.sleep(interval)

    async def fetch_stateful_set(
        self, apps_v1_api: AppsV1Api, name: str, namespace: str
    ) -> Optional[V1StatefulSet]:
        try:
            return await apps_v1_api.read_namespaced_stateful_set(
                name=name, namespace=namespace
            )
        except ApiException as ex:
            if ex.status == 404:
                return None
            raise

    async def list_stateful_sets(
        self, apps_v1_api: AppsV1Api, namespace: str, label_selector: str = None
    ) -> List[V1StatefulSet]:
        result = await apps_v1_api.list_namespaced_stateful_set(
            namespace=namespace, label_selector=label_selector
        )
        return list(result.items or [])

    async def create_stateful_set(
        self,
        apps_v1_api: AppsV1Api,
        namespace: str,
        stateful_set: V1StatefulSet,
    ):
        try:
            await apps_v1_api.create_namespaced_stateful_set(
                namespace=namespace, body=stateful_set
            )
        except ApiException as ex:
            if already_exists_error(ex):
                await self.replace_stateful_set(
                    apps_v1_api,
                    name=stateful_set.metadata.name,
                    namespace=namespace,
                    stateful_set=stateful_set,
                )
            else:
                raise

    async def replace_stateful_set(
        self,
        apps_v1_api: AppsV1Api,
        name: str,
        namespace: str,
        stateful_set: V1StatefulSet,
    ):
        await apps_v1_api.replace_namespaced_stateful_set(
            name=name, namespace=namespace, body=stateful_set
        )

    async def patch_stateful_set(
        self,
        apps_v1_api: AppsV1Api,
        name: str,
        namespace: str,
        stateful_set: Union[V1StatefulSet, Dict],
    ):
        await apps_v1_api.patch_namespaced_stateful_set(
            name=name, namespace=namespace, body=stateful_set
        )

    async def delete_stateful_set(
        self,
        apps_v1_api: AppsV1Api,
        name: str,
        namespace: str,
        delete_options: V1DeleteOptions = None,
    ):
        try:
            await apps_v1_api.delete_namespaced_stateful_set(
                name=name, namespace=namespace, body=delete_options
            )
        except ApiException as ex:
            if ex.status == 404:
                return
            raise

    async def list_pods(
        self, core_v1_api: CoreV1Api, namespace: str, label_selector: str = None
    ) -> List[V1Pod]:
        """List pods in namespace, optionally filtered by a label selector string."""
        result = await core_v1_api.list_namespaced_pod(
            namespace=namespace, label_selector=label_selector
        )
        return list(result.items or [])

    async def delete_pod(self, core_v1_api: CoreV1Api, name: str, namespace: str):
        try:
            await core_v1_api.delete_namespaced_pod(name=name, namespace=namespace)
        except ApiException as ex:
            if ex.status == 404:
                return
            raise

    async def fetch_endpoints(
        self, core_v1_api: CoreV1Api, name: str, namespace: str
    ) -> Optional[V1Endpoints]:
        try:
            return await core_v1_api.read_namespaced_endpoints(
                name=name, namespace=namespace
            )
        except ApiException as ex:
            if ex.status == 404:
                return None
            raise

    async def delete_endpoints(self, core_v1_api: CoreV1Api, name: str, namespace: str):
        try:
            await core_v1_api.delete_namespaced_endpoints(name=name, namespace=namespace)
        except ApiException as ex:
            if ex.status == 404:
                return
            raise

    async def list_jobs(
        self, batch_v1_api: BatchV1Api, namespace: str, label_selector: str = None
    ) -> List[V1Job]:
        result = await batch_v1_api.list_namespaced_job(
            namespace=namespace, label_selector=label_selector
        )
        return list(result.items or [])

    async def create_job(self, batch_v1_api: BatchV1Api, namespace: str, job: V1Job):
        # Conflicts propagate: a job that appeared since it was listed is
        # picked up by the next pass.
        await batch_v1_api.create_namespaced_job(namespace=namespace, body=job)

    async def delete_job(
        self,
        batch_v1_api: BatchV1Api,
        name: str,
        namespace: str,
        propagation_policy: str = "Background",
    ):
        try:
            await batch_v1_api.delete_namespaced_job(
                name=name,
                namespace=namespace,
                body=V1DeleteOptions(propagation_policy=propagation_policy),
            )
        except ApiException as ex:
            if ex.status == 404:
                return
            raise

    async def list_persistent_volume_claims(
        self, core_v1_api: CoreV1Api, namespace: str, label_selector: str = None
    ) -> List[V1PersistentVolumeClaim]:
        result = await core_v1_api.list_namespaced_persistent_volume_claim(
            namespace=namespace, label_selector=label_selector
        )
        return list(result.items or [])

    async def create_persistent_volume_claim(
        self,
        core_v1_api: CoreV1Api,
        namespace: str,
        pvc: V1PersistentVolumeClaim,
    ):
        # An existing claim is reused as is; its spec is immutable.
        try:
            await core_v1_api.create_namespaced_persistent_volume_claim(
                namespace=namespace, body=pvc
            )
        except ApiException as ex:
            if already_exists_error(ex):
                return
            raise

    async def delete_persistent_volume_claim(
        self,
        core_v1_api: CoreV1Api,
        name: str,
        namespace: str,
    ):
        """Delete a PersistentVolumeClaim.

        Args:
            core_v1_api: CoreV1Api instance
            name: Name of the PVC to delete
            namespace: Namespace containing the PVC
        """
        try:
            await core_v1_api.delete_namespaced_persistent_volume_claim(
                name=name,
                namespace=namespace,
                body=V1DeleteOptions(),
            )
        except ApiException as ex:
            if ex.status == 404:
                return
            raise

    async def list_config_maps(
        self, core_v1_api: CoreV1Api, namespace: str, label_selector: str = None
    ) -> List[V1ConfigMap]:
        result = await core_v1_api.list_namespaced_config_map(
            namespace=namespace, label_selector=label_selector
        )
        return list(result.items or [])

    async def delete_config_map(self, core_v1_api: CoreV1Api, name: str, namespace: str):
        try:
            await core_v1_api.delete_namespaced_config_map(name=name, namespace=namespace)
        except ApiException as ex:
            if ex.status == 404:
                return
            raise

    async def list_secrets(
        self, core_v1_api: CoreV1Api, namespace: str, label_selector: str = None
    ) -> List[V1Secret]:
        result = await core_v1_api.list_namespaced_secret(
            namespace=namespace, label_selector=label_selector
        )
        return list(result.items or [])

    async def delete_secret(self, core_v1_api: CoreV1Api, name: str, namespace: str):
        try:
            await core_v1_api.delete_namespaced_secret(name=name, namespace=namespace)
        except ApiException as ex:
            if ex.status == 404:
                return
            raise
