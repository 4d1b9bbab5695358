"""Constants for the Attester Operator."""

# API Group
API_GROUP = "rode.liatr.io"
API_VERSION = "v1alpha1"
API_GROUP_VERSION = f"{API_GROUP}/{API_VERSION}"

# Resource Kinds
KIND_ATTESTER = "Attester"
PLURAL_ATTESTERS = "attesters"

# Labels
LABEL_MANAGED_BY = f"{API_GROUP}/managed-by"
LABEL_ATTESTER_NAME = f"{API_GROUP}/attester-name"

# Finalizers
FINALIZER = f"attester.finalizers.{API_GROUP}"

# Field Manager
FIELD_MANAGER = "attester-operator"
CONTROLLER_NAME = "attester-operator"

# Secret data key holding the signer key material
SECRET_KEYS_FIELD = "keys"

# Condition Types
COND_COMPILED = "Compiled"
COND_SECRET_READY = "SecretReady"

# Condition Statuses
STATUS_TRUE = "True"
STATUS_FALSE = "False"
STATUS_UNKNOWN = "Unknown"

# Event Reasons
EVENT_REASON_RECONCILE_STARTED = "ReconcileStarted"
EVENT_REASON_RECONCILE_FAILED = "ReconcileFailed"
EVENT_REASON_POLICY_COMPILED = "PolicyCompiled"
EVENT_REASON_POLICY_INVALID = "PolicyInvalid"
EVENT_REASON_SECRET_CREATED = "SecretCreated"
EVENT_REASON_SECRET_INVALID = "SecretInvalid"
EVENT_REASON_ATTESTER_READY = "AttesterReady"
EVENT_REASON_ATTESTER_DELETED = "AttesterDeleted"
