class ApplicationError(Exception):
    """
    Base class for every error the application workflow reports to callers.
    `message` is always safe to show to the end user.
    """
    default_message = "The request could not be processed."

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationFailed(ApplicationError):
    default_message = "Some fields are invalid."

    def __init__(self, errors, message=None):
        # field name -> list of messages
        self.errors = errors
        super().__init__(message)


class DuplicateActiveApplication(ApplicationError):
    default_message = "You already have an application that is still being processed."


class InvalidTransition(ApplicationError):
    default_message = "This action is not allowed in the application's current status."


class NotFound(ApplicationError):
    default_message = "Application not found."


class Forbidden(ApplicationError):
    default_message = "You do not have permission to perform this action."


class CreationFailed(ApplicationError):
    default_message = "The application could not be saved. Please try again."


class InvalidFormat(ApplicationError):
    default_message = "The number must be exactly 16 characters."


class SequenceExhausted(CreationFailed):
    default_message = "No more application numbers are available for this month."
