"""
Canvas Template Renderer backend.
"""

__version__ = "1.0.0"
