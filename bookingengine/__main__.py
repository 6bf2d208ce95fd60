"""
Allow ``python -m bookingengine``.
"""

from .cli.app import app

if __name__ == "__main__":
    app()
