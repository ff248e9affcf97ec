"""Errors raised while configuring the database layer.

Messages name the problem, never the URL, so credentials stay out of logs.
"""

from taskwarden.errors import TaskwardenError


class DatabaseError(TaskwardenError):
    """Base class for database layer failures."""


class ConfigurationError(DatabaseError):
    """The store URL is missing, unparsable or names an unsupported driver."""
