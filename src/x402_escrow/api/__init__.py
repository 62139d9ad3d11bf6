"""API layer - dependencies, middleware and routes."""
