class TransientStoreError(RuntimeError):
    """Raised when the message store cannot be reached or an operation times out.

    Callers may retry at their own discretion; the store itself never retries writes.
    """
    def __init__(self, message, operation=None):
        super().__init__(message)
        self.operation = operation
