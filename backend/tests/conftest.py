"""
Shared pytest fixtures for all tests.

This module provides common fixtures used across multiple test modules.
Individual test modules can override these fixtures if needed.

Factories
---------
Import factories directly from their modules:

    from tests.accounts.factories import UserFactory, OrganizationFactory, MemberFactory
    from tests.billing.factories import SubscriptionFactory, UserStatsFactory

Example usage:

    @pytest.mark.django_db
    def test_something():
        user = UserFactory.create(email="test@example.com")
        org = OrganizationFactory.create()
        member = MemberFactory.create(user=user, organization=org, role="admin")
"""

from collections.abc import Callable
from typing import Any

import pytest
from django.http import HttpRequest
from django.test import Client, RequestFactory

from apps.core.auth import AuthContext


class MockRequest(HttpRequest):
    """
    HttpRequest subclass for tests that allows setting auth attribute.

    Use this instead of HttpRequest() in tests that need to set request.auth.

    Example:
        request = MockRequest()
        request.auth = AuthContext(user=user, member=member, organization=org)
    """

    auth: AuthContext


def make_request_with_auth(request: HttpRequest, auth: AuthContext) -> HttpRequest:
    """
    Set auth on a request the way BearerAuth does for real requests.

    Example:
        request = request_factory.get("/api/v1/billing/summary")
        request = make_request_with_auth(request, AuthContext(user=user))
    """
    request.auth = auth  # type: ignore[attr-defined]
    request.auth_context = auth  # type: ignore[attr-defined]
    return request


@pytest.fixture
def request_factory() -> RequestFactory:
    """
    Django request factory for unit testing views.

    Use this when you need to test view functions directly without going through
    the full HTTP stack. Useful for testing Django Ninja endpoints.
    """
    return RequestFactory()


@pytest.fixture
def api_client() -> Client:
    """
    Django test client for full HTTP request/response cycle tests.

    Example:
        def test_api_returns_200(api_client):
            response = api_client.get("/api/v1/health")
            assert response.status_code == 200
    """
    return Client()


@pytest.fixture
def authenticated_request(request_factory: RequestFactory) -> Callable[..., HttpRequest]:
    """
    Factory fixture for creating authenticated requests.

    Returns a function that creates a request with auth attributes set.

    Example:
        def test_authenticated_endpoint(authenticated_request):
            member = MemberFactory.create(role="admin")
            request = authenticated_request(member, method="put", path="/api/v1/billing/usage-limit")
            result = my_endpoint(request, payload)
    """
    from tests.accounts.factories import MemberFactory

    def _make_request(
        member: Any = None,
        method: str = "get",
        path: str = "/",
        data: dict | None = None,
        content_type: str = "application/json",
    ) -> HttpRequest:
        if member is None:
            member = MemberFactory.create()

        method_func = getattr(request_factory, method.lower())
        kwargs: dict[str, Any] = {}
        if data is not None:
            kwargs["data"] = data
            kwargs["content_type"] = content_type

        request = method_func(path, **kwargs)
        return make_request_with_auth(
            request,
            AuthContext(
                user=member.user,
                member=member,
                organization=member.organization,
            ),
        )

    return _make_request


@pytest.fixture
def admin_member(db):
    """Create a member with admin role."""
    from tests.accounts.factories import MemberFactory

    return MemberFactory.create(role="admin")


@pytest.fixture
def member(db):
    """Create a regular member."""
    from tests.accounts.factories import MemberFactory

    return MemberFactory.create(role="member")
