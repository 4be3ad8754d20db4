class BusinessRuleViolation(Exception):
    """A domain rule rejected the operation (reported to clients as a 400)."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class DuplicateIsbn(BusinessRuleViolation):
    def __init__(self, message: str = "Isbn already registered.") -> None:
        super().__init__(message)


class InvalidArgument(ValueError):
    pass
