# qurbani/domain/errors.py
"""
Exceptions raised by the service layer.

Routers do not translate these by hand; the application factory registers
one handler per class (see qurbani/main.py) which maps them to HTTP codes.
"""


class QurbaniError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(QurbaniError, ValueError):
    """Missing or malformed input. Never retried."""
    status_code = 400


class NotFoundError(QurbaniError, LookupError):
    status_code = 404


class ConstraintViolation(QurbaniError):
    """The store rejected a write that would break a group or assignment invariant."""
    status_code = 409


class TransientStoreError(QurbaniError):
    """Connection or timeout problems talking to the database."""
    status_code = 503


class DeliveryError(QurbaniError):
    status_code = 502


class DeliveryNotConfigured(QurbaniError):
    status_code = 503
