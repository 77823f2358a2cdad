class RepairServiceError(Exception):
    """Base class for failures surfaced to the API layer."""

    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFoundError(RepairServiceError):
    status_code = 404


class ValidationError(RepairServiceError):
    status_code = 422


class ConflictError(RepairServiceError):
    status_code = 409


class StorageError(RepairServiceError):
    """Attachment storage failed; the whole create call fails with it."""

    status_code = 502
