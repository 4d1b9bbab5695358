"""External collaborators consumed by the reconciler."""
