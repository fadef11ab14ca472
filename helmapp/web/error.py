class NotFoundError(Exception):
    """Resource not found"""
    pass


class AuthenticationError(Exception):
    """The repository refused our credentials."""
    pass
