"""
Core security - authentication classes for API.
"""

from django.http import HttpRequest
from ninja.security import HttpBearer

from apps.core.auth import AuthContext


class BearerAuth(HttpBearer):
    """
    Bearer token authentication for API endpoints.

    Token validation is performed upstream by the auth middleware, which
    attaches an AuthContext to the request as ``auth_context``. This class
    hands that context to Django Ninja (it becomes ``request.auth``) and
    provides the OpenAPI security scheme documentation.
    """

    def authenticate(self, request: HttpRequest, token: str) -> AuthContext | None:
        """
        Return the middleware-populated context for a present token.

        Returns None (triggers 401) when the token or context is missing.
        """
        if not token:
            return None
        context = getattr(request, "auth_context", None)
        if context is None or not context.is_authenticated:
            return None
        return context
