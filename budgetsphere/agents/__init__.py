"""Handler descriptors, registry, and the built-in financial handlers."""
