"""Tests for the node bootstrap payload."""
import yaml

from kubeforge.orchestration.bootstrap import AGENT_ROLE, SERVER_ROLE, BootstrapParams, render_bootstrap_payload


def params(**overrides):
    fields = dict(
        role=SERVER_ROLE,
        initialize=False,
        cluster_uuid="cluster-1",
        cluster_name="demo",
        kubernetes_version="v1.29.4+rke2r1",
        endpoint="abc123.k8s.test",
        join_address="10.0.0.100",
        register_token="register-secret",
        agent_token="agent-secret",
        web_endpoint="https://kubeforge.test",
        agent_version="v1.0.0",
        project_id="project-1",
        public_network_id="public-net",
    )
    fields.update(overrides)
    return BootstrapParams(**fields)


def rke2_config(script: str) -> dict:
    block = script.split("cat > /etc/rancher/rke2/config.yaml <<EOF\n", 1)[1].split("EOF\n", 1)[0]
    return yaml.safe_load(block)


def test_joining_server_registers_through_join_address():
    config = rke2_config(render_bootstrap_payload(params(labels=["role=cp"])))

    assert config == {
        "token": "register-secret",
        "server": "https://10.0.0.100:9345",
        "tls-san": ["abc123.k8s.test", "10.0.0.100"],
        "node-label": ["role=cp"],
        "node-taint": [],
    }


def test_first_server_initializes_the_cluster():
    script = render_bootstrap_payload(params(initialize=True))

    assert "server" not in rke2_config(script)
    assert "INITIALIZE=true" in script


def test_agent_payload_carries_labels_and_taints():
    script = render_bootstrap_payload(
        params(role=AGENT_ROLE, labels=["nodegroup-name=gpu"], taints=["gpu=true:NoSchedule"])
    )

    config = rke2_config(script)
    assert config["node-label"] == ["nodegroup-name=gpu"]
    assert config["node-taint"] == ["gpu=true:NoSchedule"]
    assert 'INSTALL_RKE2_TYPE="agent"' in script
    assert "systemctl enable --now rke2-agent.service" in script


def test_endpoint_equal_to_join_address_is_listed_once():
    config = rke2_config(render_bootstrap_payload(params(endpoint="10.0.0.100")))

    assert config["tls-san"] == ["10.0.0.100"]
