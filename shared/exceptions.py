"""
Exceptions shared by the order services.

Services raise these; ``main.py`` turns them into ``{"error": ...}`` responses.
"""


class ServiceError(Exception):
    """Base class carrying a client-facing message and an HTTP status"""
    status_code = 500

    def __init__(self, message, status_code=None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationError(ServiceError):
    """Missing or malformed request data; nothing has been written yet"""
    status_code = 400


class NotFoundError(ServiceError):
    """A referenced product, service, order or status does not exist"""
    status_code = 404


class ConfigurationError(ServiceError):
    """Seed data the service depends on is missing (operator error)"""
    status_code = 500


class PersistenceError(ServiceError):
    """Any other database failure; the transaction has been rolled back"""
    status_code = 500


class TransientExternalError(ServiceError):
    """An outbound call (email API) failed; logged, never shown to clients"""
    status_code = 502
