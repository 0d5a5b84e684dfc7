"""Application wiring: lifespan and request-scoped dependencies."""
