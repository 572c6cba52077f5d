"""Error message catalogue written to the per-cluster error history."""

# Cluster creation
CLUSTER_CREATE_FAILED = "Cluster creation process failed"
CLUSTER_CREATE_INTERRUPTED = "Cluster creation was interrupted"
APPLICATION_CREDENTIAL_CREATE_FAILED = "Failed to create application credential"
LOAD_BALANCER_CREATE_FAILED = "Failed to create load balancer for cluster"
FLOATING_IP_CREATE_FAILED = "Failed to create floating IP for cluster"
SECURITY_GROUP_CREATE_FAILED = "Failed to create security groups"
NODE_GROUP_CREATE_FAILED = "Failed to create node groups"
NETWORK_CREATE_FAILED = "Failed to create network components"
DNS_RECORD_CREATE_FAILED = "Failed to create DNS record for cluster"
KUBECONFIG_CREATE_FAILED = "Failed to create kubeconfig"

# Teardown
CLUSTER_DESTROY_INTERRUPTED = "Cluster destroy was interrupted"
LOAD_BALANCER_DELETE_FAILED = "Failed to delete load balancer components"
DNS_RECORD_DELETE_FAILED = "Failed to delete DNS record"
FLOATING_IP_DELETE_FAILED = "Failed to delete floating IP"
NODE_GROUP_DELETE_FAILED = "Failed to delete node groups"
NETWORK_DELETE_FAILED = "Failed to delete network components"
SECURITY_GROUP_DELETE_FAILED = "Failed to delete security groups"
APPLICATION_CREDENTIAL_DELETE_FAILED = "Failed to delete application credentials"

# Node groups
NODE_GROUP_SCALING_FAILED = "Failed to scale node groups"


def error_message(base: str, operation: str = "", cluster_uuid: str = "", details: str = "") -> str:
    """Format ``<base> during <operation> for cluster: <uuid> - Details: <details>``."""
    if not operation:
        message = base
    else:
        message = f"{base} during {operation} for cluster: {cluster_uuid or 'unknown'}"
    if details:
        message += f" - Details: {details}"
    return message
