from typing import Any


class DomainError(Exception):
    """Base class for errors raised by usecases. The message is safe to show to the caller."""


class UnauthenticatedError(DomainError):
    pass


class NotAMemberError(DomainError):
    pass


class ForbiddenError(DomainError):
    pass


class NotFoundError(DomainError):
    pass


class EventNotFoundError(NotFoundError):
    pass


class SlotNotFoundError(NotFoundError):
    pass


class BadRequestError(DomainError):
    pass


class BusinessRuleError(DomainError):
    pass


class RsvpNotRequiredError(BusinessRuleError):
    pass


class EventAlreadyStartedError(BusinessRuleError):
    pass


class GuestsNotAllowedError(BusinessRuleError):
    pass


class EventFullError(BusinessRuleError):
    pass


class SlotFullError(BusinessRuleError):
    def __init__(self, remaining: int) -> None:
        self.remaining = remaining
        super().__init__(f"Only {remaining} spots available for this volunteer slot")


class InvalidEventTimesError(BusinessRuleError):
    pass


class InvalidInputError(DomainError):
    def __init__(self, message: str, errors: list[dict[str, Any]]) -> None:
        self.errors = errors
        super().__init__(message)
