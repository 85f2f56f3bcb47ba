"""Tests for bearer token authentication."""

from datetime import UTC, datetime, timedelta

from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.orm import Session

from app.auth.utils import create_access_token, decode_access_token
from app.config import get_settings
from app.db.models import User


class TestAccessTokens:
    """Tests for token encoding and decoding."""

    def test_round_trip(self):
        """Test a fresh token decodes to its user."""
        token = create_access_token("user-1", email="tech@example.com")

        data = decode_access_token(token)

        assert data.user_id == "user-1"
        assert data.email == "tech@example.com"

    def test_expired(self):
        """Test expired tokens are rejected."""
        token = create_access_token("user-1", expires_delta=timedelta(seconds=-1))
        assert decode_access_token(token) is None

    def test_garbage(self):
        """Test malformed tokens are rejected."""
        assert decode_access_token("not-a-jwt") is None

    def test_expiry_exposed(self):
        """Test the decoded token reports when it expires."""
        data = decode_access_token(create_access_token("user-1"))

        assert data.email is None
        assert data.expires_at > datetime.now(UTC)

    def test_wrong_token_type(self):
        """Test tokens that are not access tokens are rejected."""
        settings = get_settings()
        token = jwt.encode(
            {"sub": "user-1", "type": "refresh"},
            settings.secret_key,
            algorithm=settings.algorithm,
        )
        assert decode_access_token(token) is None


class TestCurrentUser:
    """Tests for authenticating API calls with a bearer token."""

    def test_valid_token(self, client: TestClient, test_user: User):
        """Test a valid token for a technician reaches the endpoint."""
        token = create_access_token(test_user.id, email=test_user.email)

        response = client.get(
            "/api/equipment/import/fields",
            headers={"Authorization": f"Bearer {token}"},
        )

        assert response.status_code == 200

    def test_missing_token(self, client: TestClient):
        """Test calls without a token are refused."""
        response = client.get("/api/equipment/import/fields")
        assert response.status_code == 401

    def test_unknown_user(self, client: TestClient, db: Session):
        """Test a valid token for a user that does not exist is refused."""
        token = create_access_token("00000000-0000-0000-0000-000000000000")

        response = client.get(
            "/api/equipment/import/fields",
            headers={"Authorization": f"Bearer {token}"},
        )

        assert response.status_code == 401
        assert response.json()["detail"] == "User not found"

    def test_disabled_user(self, client: TestClient, db: Session, test_user: User):
        """Test disabled accounts are refused."""
        test_user.is_active = False
        db.commit()
        token = create_access_token(test_user.id)

        response = client.get(
            "/api/equipment/import/fields",
            headers={"Authorization": f"Bearer {token}"},
        )

        assert response.status_code == 403
