class CafePosError(Exception):
    """Base class for failures reported to the client with a readable reason."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidRequestError(CafePosError):
    status_code = 400


class CrossTenantError(CafePosError):
    status_code = 403


class NotFoundError(CafePosError):
    status_code = 404


class BusinessRuleError(CafePosError):
    """An expected, recoverable rule violation (not a defect)."""

    status_code = 409


class MenuItemUnavailableError(BusinessRuleError):
    pass


class TokensExhaustedError(BusinessRuleError):
    pass


class OrderStateError(BusinessRuleError):
    pass


class CancellationWindowExpiredError(BusinessRuleError):
    pass
