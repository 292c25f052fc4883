"""Unity Cloud Build REST API access."""
