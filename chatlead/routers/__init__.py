"""
FastAPI routers grouped by use case (onboarding, auth).

Each module exposes an APIRouter included by the app factory. Routers only
translate HTTP to service calls; the services live in chatlead.services.
"""
