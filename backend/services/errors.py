from fastapi import status


class WorkflowError(Exception):
    """Base class for failures a workflow reports to the caller."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request could not be processed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(WorkflowError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class AlreadyProcessed(WorkflowError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Request not found or already processed"


class NoCapacity(WorkflowError):
    default_message = "No available beds"


class InvalidBed(WorkflowError):
    default_message = "Bed not found in the admission's ward"


class BedUnavailable(WorkflowError):
    default_message = "Bed is not available"


class InsufficientStock(WorkflowError):
    default_message = "Insufficient pharmacy stock"


class InvalidTransition(WorkflowError):
    default_message = "Invalid status transition"


class UpdateFailed(WorkflowError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Failed to update record"
