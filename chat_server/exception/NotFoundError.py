class NotFoundError(LookupError):
    """Raised when a referenced message does not exist or is not visible to the caller."""
    def __init__(self, message):
        super().__init__(message)
