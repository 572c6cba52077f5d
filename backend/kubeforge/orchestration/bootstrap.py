"""Cloud-init payload that turns a fresh instance into an rke2 node."""
from dataclasses import dataclass, field
from string import Template
from typing import List
import base64

import yaml

SERVER_ROLE = "server"
AGENT_ROLE = "agent"

_SCRIPT = Template("""#!/bin/bash
set -euo pipefail

mkdir -p /etc/rancher/rke2
cat > /etc/rancher/rke2/config.yaml <<EOF
${rke2_config}EOF

curl -sfL https://get.rke2.io | INSTALL_RKE2_VERSION="${kubernetes_version}" INSTALL_RKE2_TYPE="${role}" sh -
systemctl enable --now rke2-${role}.service

mkdir -p /etc/kubeforge
cat > /etc/kubeforge/agent.env <<EOF
CLUSTER_UUID=${cluster_uuid}
CLUSTER_NAME=${cluster_name}
API_ENDPOINT=${web_endpoint}
AGENT_TOKEN=${agent_token}
AGENT_VERSION=${agent_version}
INITIALIZE=${initialize}
PROJECT_ID=${project_id}
PUBLIC_NETWORK_ID=${public_network_id}
APPLICATION_CREDENTIAL_ID=${application_credential_id}
APPLICATION_CREDENTIAL_SECRET=${application_credential_secret}
CLUSTER_AGENT_VERSION=${cluster_agent_version}
CLUSTER_AUTOSCALER_VERSION=${cluster_autoscaler_version}
CLOUD_PROVIDER_VERSION=${cloud_provider_version}
EOF
""")


@dataclass
class BootstrapParams:
    """Named inputs of the node payload."""

    role: str
    initialize: bool
    cluster_uuid: str
    cluster_name: str
    kubernetes_version: str
    endpoint: str
    join_address: str
    register_token: str
    agent_token: str
    web_endpoint: str
    agent_version: str
    project_id: str
    public_network_id: str
    labels: List[str] = field(default_factory=list)
    taints: List[str] = field(default_factory=list)
    # Control-plane only
    application_credential_id: str = ""
    application_credential_secret: str = ""
    cluster_agent_version: str = ""
    cluster_autoscaler_version: str = ""
    cloud_provider_version: str = ""


def render_bootstrap_payload(params: BootstrapParams) -> str:
    """Render the shell script run by cloud-init on first boot."""
    # Joining nodes register through the load balancer; the first master seeds the cluster
    config = {"token": params.register_token}
    if not params.initialize:
        config["server"] = f"https://{params.join_address}:9345"
    config["tls-san"] = [params.endpoint]
    if params.join_address and params.join_address != params.endpoint:
        config["tls-san"].append(params.join_address)
    config["node-label"] = list(params.labels)
    config["node-taint"] = list(params.taints)
    return _SCRIPT.substitute(
        rke2_config=yaml.safe_dump(config, default_flow_style=False, sort_keys=False),
        kubernetes_version=params.kubernetes_version,
        role=params.role,
        cluster_uuid=params.cluster_uuid,
        cluster_name=params.cluster_name,
        web_endpoint=params.web_endpoint,
        agent_token=params.agent_token,
        agent_version=params.agent_version,
        initialize=str(params.initialize).lower(),
        project_id=params.project_id,
        public_network_id=params.public_network_id,
        application_credential_id=params.application_credential_id,
        application_credential_secret=params.application_credential_secret,
        cluster_agent_version=params.cluster_agent_version,
        cluster_autoscaler_version=params.cluster_autoscaler_version,
        cloud_provider_version=params.cloud_provider_version,
    )


def encode_payload(script: str) -> str:
    return base64.b64encode(script.encode()).decode()
