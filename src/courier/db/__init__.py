"""Database subsystem for Courier.

Public API::

    from courier.db import init_database
"""

from courier.db.init import init_database

__all__ = ["init_database"]
