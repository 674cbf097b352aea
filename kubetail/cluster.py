"""Kubernetes access: credentials, pod inventory, and follow-mode log streams."""

import logging

from kubernetes import client
from kubernetes import config as kube_config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import HTTPError

from kubetail.errors import ClusterConfigError, InventoryError, StreamOpenError
from kubetail.models import TargetRecord
from kubetail.reader import DEFAULT_CHUNK_SIZE

logger = logging.getLogger(__name__)

SUPPORTED_KINDS = ("pods",)


def _reason(error: Exception) -> str:
    if isinstance(error, ApiException):
        return f"{error.status} {error.reason}"
    return str(error)


def _to_target(pod) -> TargetRecord:
    meta = pod.metadata
    url = getattr(meta, "self_link", None) or f"/api/v1/namespaces/{meta.namespace}/pods/{meta.name}"
    return TargetRecord(
        name=meta.name,
        namespace=meta.namespace,
        kind=pod.kind or "Pod",
        url=url,
    )


class PodLogStream:
    """Byte-stream view over a streaming (follow=True) pod log response.

    Reads hand back whatever the API server has sent so far, at most `size` bytes
    per call, instead of waiting for a full buffer.
    """

    def __init__(self, response, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self._response = response
        self._chunks = response.stream(chunk_size, decode_content=False)
        self._pending = b""

    def read(self, size: int) -> bytes:
        if not self._pending:
            self._pending = next(self._chunks, b"")
        data, self._pending = self._pending[:size], self._pending[size:]
        return data

    def close(self):
        """Interrupt a pending read, then close the response and release its connection.

        response.close() needs the lock a blocked read holds, so the socket is
        shut down for reading first.
        """
        try:
            self._response.shutdown()
        except (OSError, ValueError, RuntimeError) as e:
            logger.debug("Socket shutdown skipped: %s", e)
        self._response.close()
        self._response.release_conn()


class KubernetesInventory:
    """Lists pods and opens their log streams through the CoreV1 API."""

    def __init__(self, api: client.CoreV1Api, namespace: str | None = None,
                 chunk_size: int = DEFAULT_CHUNK_SIZE):
        self._api = api
        self._namespace = namespace
        self._chunk_size = chunk_size

    @classmethod
    def from_config(cls, in_cluster: bool = False, kubeconfig: str | None = None,
                    namespace: str | None = None,
                    chunk_size: int = DEFAULT_CHUNK_SIZE) -> "KubernetesInventory":
        """Load cluster credentials and build an inventory on top of them."""
        try:
            if in_cluster:
                kube_config.load_incluster_config()
                logger.debug("Loaded in-cluster configuration")
            else:
                kube_config.load_kube_config(config_file=kubeconfig)
                logger.debug("Loaded kubeconfig %s", kubeconfig or "(default)")
        except (ConfigException, OSError) as e:
            if in_cluster:
                raise ClusterConfigError(
                    f"unable to load in-cluster configuration, are you running in a pod? ({e})"
                ) from e
            raise ClusterConfigError(f"cannot load kubeconfig {kubeconfig or '~/.kube/config'}: {e}") from e
        return cls(client.CoreV1Api(), namespace=namespace, chunk_size=chunk_size)

    def list_targets(self, kind: str = "pods") -> list[TargetRecord]:
        if kind not in SUPPORTED_KINDS:
            raise InventoryError(f"unsupported resource kind: {kind}")
        try:
            if self._namespace:
                pods = self._api.list_namespaced_pod(self._namespace)
            else:
                pods = self._api.list_pod_for_all_namespaces()
        except (ApiException, HTTPError) as e:
            raise InventoryError(f"cannot list pods: {_reason(e)}") from e

        targets = [_to_target(pod) for pod in pods.items]
        logger.debug("Inventory returned %d pod(s)", len(targets))
        return targets

    def open_log_stream(self, target: TargetRecord, tail_lines: int,
                        container: str | None = None) -> PodLogStream:
        kwargs = {"follow": True, "tail_lines": tail_lines, "_preload_content": False}
        if container:
            kwargs["container"] = container
        try:
            response = self._api.read_namespaced_pod_log(target.name, target.namespace, **kwargs)
        except (ApiException, HTTPError) as e:
            raise StreamOpenError(target.name, _reason(e)) from e
        return PodLogStream(response, self._chunk_size)
