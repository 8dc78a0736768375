"""
Web module for the receipt printer.

Exposes blueprints for:
- JSON API (v1): api_bp
- Health endpoint: health_bp
"""

from .api import api_bp
from .health import health_bp

__all__ = ["api_bp", "health_bp"]
