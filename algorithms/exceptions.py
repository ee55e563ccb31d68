"""
Domain errors raised by the blood bank rules
Every error carries a human-readable message; the API layer maps each class
to an HTTP status code.
"""


class BloodBankError(Exception):
    """Base class for all blood bank domain errors"""
    default_message = 'Blood bank operation failed'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(BloodBankError):
    default_message = 'Record not found'


class ValidationError(BloodBankError):
    default_message = 'Invalid input'


class InvalidTransition(BloodBankError):
    default_message = 'Invalid status transition'

    def __init__(self, current_status, new_status, message=None):
        self.current_status = current_status
        self.new_status = new_status
        super().__init__(
            message or f"Cannot change status from {current_status} to {new_status}"
        )


class ProtectedRecord(BloodBankError):
    default_message = 'Record is protected and cannot be removed'


class ImmutableRecord(ProtectedRecord):
    """Transfused units are permanent history"""
    default_message = 'Transfused blood units cannot be modified'


class UnitUnavailable(BloodBankError):
    default_message = 'Blood unit is not available'


class IncompatibleBloodType(BloodBankError):
    default_message = 'Blood types are not compatible'


class StorageError(BloodBankError):
    """Raised when the database fails underneath an operation"""
    default_message = 'Storage failure'
