"""Build operations: resolving, monitoring, downloading and revision checks."""
