"""Route blueprints for the web application."""

from .projects import projects_bp
from .translation import translation_bp
from .settings import settings_bp

__all__ = [
    "projects_bp",
    "translation_bp",
    "settings_bp",
]
