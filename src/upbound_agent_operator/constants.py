"""Default values and constants for upbound-agent-operator."""

# Operator name
OPERATOR_NAME = "upbound-agent-operator"
CONTROLLER_NAME = "upboundAgent"

# =============================================================================
# Well-known resource names
# =============================================================================

# Versions ConfigMap written by the Universal Crossplane installation. The
# agent Deployment is owned by it.
CONFIGMAP_UXP_VERSIONS = "universal-crossplane-config"

# Managed agent Deployment
DEPLOYMENT_UPBOUND_AGENT = "upbound-agent"
AGENT_CONTAINER_NAME = "upbound-agent"

# Key in the token Secret holding the control plane bearer token
KEY_TOKEN = "token"

# Watched token Secret
DEFAULT_TOKEN_SECRET = "upbound-control-plane-token"

# Namespace to watch; empty means cluster-wide
DEFAULT_WATCH_NAMESPACE = "upbound-system"

# =============================================================================
# Kinds
# =============================================================================

KIND_CONFIGMAP = "ConfigMap"
KIND_SECRET = "Secret"
KIND_DEPLOYMENT = "Deployment"

# =============================================================================
# Agent image
# =============================================================================

DEFAULT_AGENT_IMAGE = "upbound/upbound-agent"
DEFAULT_AGENT_IMAGE_TAG = "latest"
DEFAULT_AGENT_PULL_POLICY = "IfNotPresent"
DEFAULT_AGENT_REPLICAS = 1

# Comma separated KEY=VALUE pairs added to the agent container
DEFAULT_AGENT_EXTRA_ENV = ""

# YAML file replacing the generated Deployment spec entirely
DEFAULT_DEPLOYMENT_SPEC_FILE = ""

# =============================================================================
# Default Resources
# =============================================================================

DEFAULT_CPU_REQUEST = "100m"
DEFAULT_MEMORY_REQUEST = "64Mi"
DEFAULT_CPU_LIMIT = "500m"
DEFAULT_MEMORY_LIMIT = "256Mi"

# =============================================================================
# Reconciliation
# =============================================================================

DEFAULT_RECONCILE_TIMEOUT_S = 60.0
DEFAULT_RETRY_LIMIT = 5
DEFAULT_RETRY_BACKOFF_S = 1.0
DEFAULT_RETRY_BACKOFF_MAX_S = 60.0

DEFAULT_LOG_LEVEL = "INFO"

# =============================================================================
# Labels
# =============================================================================

LABEL_MANAGED_BY = "app.kubernetes.io/managed-by"
LABEL_VALUE_MANAGED_BY = OPERATOR_NAME
LABEL_APP = "app"
