class ValidationError(ValueError):
    """Raised when a chat request is malformed (empty body, bad or missing id)."""
    def __init__(self, message, field=None):
        super().__init__(message)
        self.field = field
