"""Error types raised by the scheduling services.

Routers translate these into HTTP responses; the services themselves never
catch them.
"""


class ServiceError(Exception):
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFoundError(ServiceError):
    """A staff member, staff service or appointment is missing from the business."""
    status_code = 404


class BadRequestError(ServiceError):
    """The request breaks a scheduling rule."""
    status_code = 400


class ConflictError(ServiceError):
    """The requested interval collides with an active appointment."""
    status_code = 409
