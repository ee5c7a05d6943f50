"""REST API for the location tracker."""

from .controller import TrackerAPIController
from .server import APIServer, create_app

__all__ = ["APIServer", "TrackerAPIController", "create_app"]
