"""Flask application package for Courier.

Public API::

    from courier.app import create_app
"""

from courier.app.factory import create_app

__all__ = ["create_app"]
