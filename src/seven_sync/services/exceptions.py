class FriendlyError(Exception):
    """Raised for problems the user can fix, reported without a stack trace"""

    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code


class InternalError(Exception):
    """Raised when an invariant is violated (a bug, not a user mistake)"""

    def __init__(self, message: str):
        super().__init__(f"Internal error: {message}")
        self.message = message
