"""Mapping of OpenTelemetry resources to Cloud Monitoring monitored resources.

Every time series written to Cloud Monitoring is attached to a monitored
resource (``gce_instance``, ``k8s_container``, ``generic_task``, ...). The
type is chosen from ``cloud.platform`` and the attributes present; labels
that cannot be found default to an empty string.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, TypedDict

from opentelemetry.sdk.resources import Resource

# Attribute keys from the OpenTelemetry resource semantic conventions
CLOUD_ACCOUNT_ID = "cloud.account.id"
CLOUD_AVAILABILITY_ZONE = "cloud.availability_zone"
CLOUD_PLATFORM = "cloud.platform"
CLOUD_REGION = "cloud.region"
FAAS_INSTANCE = "faas.instance"
FAAS_NAME = "faas.name"
FAAS_VERSION = "faas.version"
HOST_ID = "host.id"
HOST_NAME = "host.name"
K8S_CLUSTER_NAME = "k8s.cluster.name"
K8S_CONTAINER_NAME = "k8s.container.name"
K8S_NAMESPACE_NAME = "k8s.namespace.name"
K8S_NODE_NAME = "k8s.node.name"
K8S_POD_NAME = "k8s.pod.name"
SERVICE_INSTANCE_ID = "service.instance.id"
SERVICE_NAME = "service.name"
SERVICE_NAMESPACE = "service.namespace"

GCP_COMPUTE_ENGINE = "gcp_compute_engine"
GCP_KUBERNETES_ENGINE = "gcp_kubernetes_engine"
GCP_APP_ENGINE = "gcp_app_engine"
AWS_EC2 = "aws_ec2"

GCE_INSTANCE = "gce_instance"
K8S_CONTAINER = "k8s_container"
K8S_POD = "k8s_pod"
K8S_NODE = "k8s_node"
K8S_CLUSTER = "k8s_cluster"
GAE_INSTANCE = "gae_instance"
AWS_EC2_INSTANCE = "aws_ec2_instance"
GENERIC_TASK = "generic_task"
GENERIC_NODE = "generic_node"

_LOCATION = (CLOUD_AVAILABILITY_ZONE, CLOUD_REGION)

# Monitored resource label -> resource attribute keys, tried in order
_LABEL_SOURCES: dict[str, dict[str, tuple[str, ...]]] = {
    GCE_INSTANCE: {
        "zone": (CLOUD_AVAILABILITY_ZONE,),
        "instance_id": (HOST_ID,),
    },
    K8S_CONTAINER: {
        "location": _LOCATION,
        "cluster_name": (K8S_CLUSTER_NAME,),
        "namespace_name": (K8S_NAMESPACE_NAME,),
        "pod_name": (K8S_POD_NAME,),
        "container_name": (K8S_CONTAINER_NAME,),
    },
    K8S_POD: {
        "location": _LOCATION,
        "cluster_name": (K8S_CLUSTER_NAME,),
        "namespace_name": (K8S_NAMESPACE_NAME,),
        "pod_name": (K8S_POD_NAME,),
    },
    K8S_NODE: {
        "location": _LOCATION,
        "cluster_name": (K8S_CLUSTER_NAME,),
        "node_name": (K8S_NODE_NAME,),
    },
    K8S_CLUSTER: {
        "location": _LOCATION,
        "cluster_name": (K8S_CLUSTER_NAME,),
    },
    GAE_INSTANCE: {
        "location": _LOCATION,
        "module_id": (FAAS_NAME,),
        "version_id": (FAAS_VERSION,),
        "instance_id": (FAAS_INSTANCE,),
    },
    AWS_EC2_INSTANCE: {
        "instance_id": (HOST_ID,),
        "region": _LOCATION,
        "aws_account": (CLOUD_ACCOUNT_ID,),
    },
    GENERIC_TASK: {
        "location": _LOCATION,
        "namespace": (SERVICE_NAMESPACE,),
        "job": (SERVICE_NAME, FAAS_NAME),
        "task_id": (SERVICE_INSTANCE_ID, FAAS_INSTANCE),
    },
    GENERIC_NODE: {
        "location": _LOCATION,
        "namespace": (SERVICE_NAMESPACE,),
        "node_id": (HOST_ID, HOST_NAME),
    },
}

# Labels that fall back to "global" rather than "" when unknown
_GLOBAL_DEFAULT = {"location", "region"}


class MonitoredResource(TypedDict):
    type: str
    labels: dict[str, str]


def _resource_type(attributes: Mapping[str, Any]) -> str:
    platform = attributes.get(CLOUD_PLATFORM)
    if platform == GCP_COMPUTE_ENGINE:
        return GCE_INSTANCE
    if platform == GCP_KUBERNETES_ENGINE:
        if K8S_CONTAINER_NAME in attributes:
            return K8S_CONTAINER
        if K8S_POD_NAME in attributes:
            return K8S_POD
        if K8S_NODE_NAME in attributes:
            return K8S_NODE
        return K8S_CLUSTER
    if platform == GCP_APP_ENGINE:
        return GAE_INSTANCE
    if platform == AWS_EC2:
        return AWS_EC2_INSTANCE

    has_job = SERVICE_NAME in attributes or FAAS_NAME in attributes
    has_task = SERVICE_INSTANCE_ID in attributes or FAAS_INSTANCE in attributes
    if has_job and has_task:
        return GENERIC_TASK
    return GENERIC_NODE


def get_monitored_resource(resource: Resource | None) -> MonitoredResource:
    """Map an OpenTelemetry resource onto a Cloud Monitoring monitored resource."""
    attributes: Mapping[str, Any] = resource.attributes if resource is not None else {}
    resource_type = _resource_type(attributes)

    labels: dict[str, str] = {}
    for label, sources in _LABEL_SOURCES[resource_type].items():
        value = next(
            (attributes[key] for key in sources if attributes.get(key) not in (None, "")),
            None,
        )
        if value is None:
            value = "global" if label in _GLOBAL_DEFAULT else ""
        labels[label] = str(value)

    return MonitoredResource(type=resource_type, labels=labels)
