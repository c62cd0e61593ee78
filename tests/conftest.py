"""
Pytest configuration and shared fixtures.

Provides a test application, database session, test client and a few
helpers for creating signed-in users.  The ``testing`` configuration
runs against in-memory SQLite, so every test gets a freshly created
schema that is dropped again afterwards.
"""

import pytest
from flask import g, has_app_context
from flask.testing import FlaskClient

from app import create_app
from app.extensions import db as _db
from app.extensions import orchestrator as _orchestrator
from app.services import auth_service


class ApiClient(FlaskClient):
    """
    Test client that forgets the Flask-Login user between requests.

    Requests made while a test holds an app context share that context's
    ``g``, where Flask-Login caches the current user.
    """

    def open(self, *args, **kwargs):
        if has_app_context():
            g.pop("_login_user", None)
        return super().open(*args, **kwargs)


@pytest.fixture(scope="session")
def app(tmp_path_factory):
    """
    Create a Flask application configured for testing.

    The app is created once per test session.  Upload, table and
    visualization folders point into a temporary directory.
    """
    root = tmp_path_factory.mktemp("servicenexus")
    app = create_app("testing")
    app.config.update(
        UPLOAD_FOLDER=str(root / "uploads"),
        TABLE_DATA_FOLDER=str(root / "tables"),
        VISUALIZATION_FOLDER=str(root / "visualizations"),
    )
    app.test_client_class = ApiClient
    yield app


@pytest.fixture(scope="function")
def db_session(app):  # pylint: disable=redefined-outer-name
    """
    Provide a clean database session for each test function.

    The schema is created before the test and dropped afterwards, and
    the orchestrator's queue and stored results are cleared.
    """
    with app.app_context():
        _db.create_all()
        _orchestrator.cleanup()

        yield _db.session

        _db.session.remove()
        _db.drop_all()
        _orchestrator.cleanup()


@pytest.fixture(scope="function")
def client(app):  # pylint: disable=redefined-outer-name
    """
    Provide a Flask test client for making HTTP requests.

    Usage in tests::

        def test_health(client):
            response = client.get("/health")
            assert response.status_code == 200
    """
    with app.test_client() as test_client:
        yield test_client


# =========================================================================
# Auth helpers
# =========================================================================


def bearer(token: str) -> dict:
    """Return the Authorization header for an access token."""
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="function")
def make_user(db_session):  # pylint: disable=redefined-outer-name,unused-argument
    """
    Factory creating a user with a live session.

    Returns ``(user, headers)`` where ``headers`` carries the Bearer
    access token::

        user, headers = make_user("ADMIN")
    """
    counter = {"n": 0}

    def _make(role: str = "USER", email: str | None = None, password: str = "secret123"):
        counter["n"] += 1
        user, tokens = auth_service.register_user(
            email=email or f"user{counter['n']}@example.com",
            password=password,
            first_name="Test",
            last_name=f"User{counter['n']}",
            role=role,
        )
        return user, bearer(tokens["access_token"])

    return _make


@pytest.fixture(scope="function")
def user_headers(make_user):  # pylint: disable=redefined-outer-name
    """Bearer headers for a plain USER account."""
    _, headers = make_user()
    return headers


@pytest.fixture(scope="function")
def admin_headers(make_user):  # pylint: disable=redefined-outer-name
    """Bearer headers for an ADMIN account."""
    _, headers = make_user("ADMIN")
    return headers
