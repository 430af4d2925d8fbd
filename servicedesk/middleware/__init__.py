from .auth import AuthenticationMiddleware

__all__ = ["AuthenticationMiddleware"]
