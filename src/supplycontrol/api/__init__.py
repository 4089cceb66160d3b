"""API package for supply control."""

from supplycontrol.api.app import app, create_app
from supplycontrol.api.routes import router

__all__ = ["app", "create_app", "router"]
