# planivo/routes/__init__.py
"""
Application routes package
"""

from .auth import register_auth_routes


def init_routes(app):
    """Initialize all application routes"""
    register_auth_routes(app)
