from rest_framework import status


class AllocationError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class AllocationValidationError(AllocationError):
    """Precondition violated; nothing was written"""
    status_code = status.HTTP_400_BAD_REQUEST


class AllocationNotFound(AllocationError):
    status_code = status.HTTP_404_NOT_FOUND
