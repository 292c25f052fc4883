"""Core types shared by the API layer and build operations."""
