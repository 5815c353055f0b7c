"""REST API for ezkonnect."""

from ezkonnect.api.app import create_app

__all__ = ["create_app"]
