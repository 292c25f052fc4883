"""CLI package for cloudbuild."""

from cloudbuild.cli.app import app, main

__all__ = ["app", "main"]
