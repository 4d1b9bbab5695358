"""Handler modules for CRD resources."""
