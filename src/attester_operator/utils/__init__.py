"""Utility functions for the Attester Operator."""

from .conditions import ConditionTracker, conditions_as_mapping, is_initialized
from .context import (
    get_context_dict,
    get_correlation_id,
    propagate_trace_context,
    with_correlation_id,
)
from .events import emit_event
from .finalizers import FinalizerManager
from .rate_limit import rate_limit_k8s

__all__ = [
    "ConditionTracker",
    "conditions_as_mapping",
    "is_initialized",
    "FinalizerManager",
    "emit_event",
    "rate_limit_k8s",
    "get_correlation_id",
    "with_correlation_id",
    "get_context_dict",
    "propagate_trace_context",
]
