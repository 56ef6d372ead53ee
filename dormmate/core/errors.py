class NotFoundError(ValueError):
    """A referenced record does not exist."""
