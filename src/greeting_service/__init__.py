"""
Greeting service: a single-route HTTP server for containerized deployment.
"""
from greeting_service.app import create_app
from greeting_service.config import ServiceSettings

__all__ = ["ServiceSettings", "create_app"]
__version__ = "1.0.0"
