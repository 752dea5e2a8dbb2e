"""
Unit tests for the OIDC token client.
"""
import jwt
import pytest
import requests
from pydantic import ValidationError

from authk.core.config import parse_config
from authk.core.exceptions import (
    ConfigError,
    DiscoveryError,
    TokenDecodeError,
    TokenError,
    TokenRequestError,
)
from authk.oidc.client import OIDCClient, resolve_auth_method
from authk.oidc.models import Credential
from tests.fixtures.factories import (
    ClientCredentialsResponseFactory,
    TokenResponseFactory,
    create_config_document,
)
from tests.fixtures.helpers import make_response


def _client(session, **overrides):
    document = create_config_document(**overrides.pop("root", {}))
    document["oidc"].update(overrides)
    return OIDCClient(parse_config(document), session=session)


def _posted(session):
    """Return (url, data, kwargs) of the last POST."""
    args, kwargs = session.post.call_args
    url = args[0] if args else kwargs["url"]
    return url, kwargs["data"], kwargs


@pytest.mark.unit
@pytest.mark.oidc
class TestResolveAuthMethod:
    """Test suite for auth method normalization."""

    @pytest.mark.parametrize("value", ["", None, "basic", "client_secret_basic", "BASIC"])
    def test_basic_aliases(self, value):
        assert resolve_auth_method(value) == "basic"

    @pytest.mark.parametrize("value", ["post", "client_secret_post"])
    def test_post_aliases(self, value):
        assert resolve_auth_method(value) == "post"

    def test_unsupported(self):
        with pytest.raises(ConfigError, match="unsupported auth method: private_key_jwt"):
            resolve_auth_method("private_key_jwt")


@pytest.mark.unit
@pytest.mark.oidc
class TestClientConstruction:
    """Test suite for OIDCClient construction."""

    def test_discovers_token_endpoint(self, mock_session, discovery_document):
        client = _client(mock_session)

        assert client.token_endpoint == discovery_document["token_endpoint"]
        mock_session.get.assert_called_once()

    def test_pre_resolved_endpoints_skip_discovery(self, mock_session, config, endpoints):
        client = OIDCClient(config, session=mock_session, endpoints=endpoints)

        assert client.token_endpoint == endpoints.token_endpoint
        mock_session.get.assert_not_called()

    def test_unsupported_auth_method_fails_before_discovery(self, mock_session):
        with pytest.raises(ConfigError):
            _client(mock_session, authMethod="tls_client_auth")

        mock_session.get.assert_not_called()

    def test_discovery_failure_propagates(self, mock_session):
        mock_session.get.return_value = make_response(500, text="boom")

        with pytest.raises(DiscoveryError):
            _client(mock_session)


@pytest.mark.unit
@pytest.mark.oidc
class TestGetToken:
    """Test suite for the password and client-credentials grants."""

    def test_client_credentials_with_basic_auth(self, mock_session, discovery_document):
        body = ClientCredentialsResponseFactory()
        mock_session.post.return_value = make_response(200, body)
        client = _client(mock_session)

        credential = client.get_token()

        url, data, kwargs = _posted(mock_session)
        assert url == discovery_document["token_endpoint"]
        assert data == {"grant_type": "client_credentials"}
        assert kwargs["auth"] == ("authk-client", "s3cr3t")
        assert kwargs["timeout"] == 30
        assert kwargs["headers"]["Content-Type"] == "application/x-www-form-urlencoded"
        assert credential.access_token == body["access_token"]
        assert credential.refresh_token is None
        assert credential.expires_in == 300

    def test_client_credentials_with_post_auth(self, mock_session):
        mock_session.post.return_value = make_response(200, ClientCredentialsResponseFactory())
        client = _client(mock_session, authMethod="client_secret_post")

        client.get_token()

        _, data, kwargs = _posted(mock_session)
        assert data["client_id"] == "authk-client"
        assert data["client_secret"] == "s3cr3t"
        assert kwargs["auth"] is None

    def test_basic_credentials_are_form_urlencoded(self, mock_session):
        mock_session.post.return_value = make_response(200, ClientCredentialsResponseFactory())
        client = _client(mock_session, clientId="my client", clientSecret="p@ss:word")

        client.get_token()

        _, _, kwargs = _posted(mock_session)
        assert kwargs["auth"] == ("my+client", "p%40ss%3Aword")

    def test_password_grant_with_configured_user(self, mock_session):
        mock_session.post.return_value = make_response(200, TokenResponseFactory())
        client = _client(
            mock_session,
            scopes=["openid", "profile"],
            root={"user": {"username": "alice", "password": "wonderland"}},
        )

        client.get_token()

        _, data, _ = _posted(mock_session)
        assert data["grant_type"] == "password"
        assert data["username"] == "alice"
        assert data["password"] == "wonderland"
        assert data["scope"] == "openid profile"

    def test_explicit_arguments_override_configured_user(self, mock_session):
        mock_session.post.return_value = make_response(200, TokenResponseFactory())
        client = _client(mock_session, root={"user": {"username": "alice", "password": "wonderland"}})

        client.get_token("bob", "builder")

        _, data, _ = _posted(mock_session)
        assert data["username"] == "bob"
        assert data["password"] == "builder"

    def test_username_without_password_uses_client_credentials(self, mock_session):
        mock_session.post.return_value = make_response(200, ClientCredentialsResponseFactory())
        client = _client(mock_session, root={"user": {"username": "alice"}})

        client.get_token()

        _, data, _ = _posted(mock_session)
        assert data["grant_type"] == "client_credentials"
        assert "username" not in data
        assert mock_session.post.call_count == 1

    def test_scope_sent_for_client_credentials(self, mock_session):
        mock_session.post.return_value = make_response(200, ClientCredentialsResponseFactory())
        client = _client(mock_session, scopes=["api:read", "api:write"])

        client.get_token()

        _, data, _ = _posted(mock_session)
        assert data["scope"] == "api:read api:write"

    def test_redirect_uri_included_when_configured(self, mock_session):
        mock_session.post.return_value = make_response(200, ClientCredentialsResponseFactory())
        client = _client(mock_session, redirectUri="http://localhost:8080/callback")

        client.get_token()

        _, data, _ = _posted(mock_session)
        assert data["redirect_uri"] == "http://localhost:8080/callback"

    def test_non_200_raises_request_error_with_json_body(self, mock_session):
        error = {"error": "invalid_client", "error_description": "bad secret"}
        mock_session.post.return_value = make_response(401, error)
        client = _client(mock_session)

        with pytest.raises(TokenRequestError) as exc_info:
            client.get_token()

        assert exc_info.value.status_code == 401
        assert exc_info.value.error_body == error

    def test_non_200_with_text_body(self, mock_session):
        mock_session.post.return_value = make_response(502, text="Bad Gateway", json_error=True)
        client = _client(mock_session)

        with pytest.raises(TokenRequestError) as exc_info:
            client.get_token()

        assert exc_info.value.status_code == 502
        assert exc_info.value.error_body == "Bad Gateway"

    def test_transport_error_is_a_token_error(self, mock_session):
        mock_session.post.side_effect = requests.Timeout("read timed out")
        client = _client(mock_session)

        with pytest.raises(TokenRequestError) as exc_info:
            client.get_token()

        assert exc_info.value.status_code is None

    def test_invalid_json_raises_decode_error(self, mock_session):
        mock_session.post.return_value = make_response(200, json_error=True)
        client = _client(mock_session)

        with pytest.raises(TokenDecodeError):
            client.get_token()

    def test_missing_access_token_raises_decode_error(self, mock_session):
        mock_session.post.return_value = make_response(200, {"token_type": "Bearer", "expires_in": 60})
        client = _client(mock_session)

        with pytest.raises(TokenDecodeError):
            client.get_token()

    def test_id_token_does_not_affect_result(self, mock_session):
        body = TokenResponseFactory()
        body["id_token"] = jwt.encode(
            {"iss": "https://idp.example.com", "sub": "alice"},
            "an-hmac-secret-that-is-long-enough-for-hs256",
            algorithm="HS256",
        )
        mock_session.post.return_value = make_response(200, body)
        client = _client(mock_session)

        credential = client.get_token()

        assert credential.id_token == body["id_token"]
        assert credential.access_token == body["access_token"]

    def test_malformed_id_token_is_tolerated(self, mock_session):
        body = TokenResponseFactory()
        body["id_token"] = "not-a-jwt"
        mock_session.post.return_value = make_response(200, body)
        client = _client(mock_session)

        credential = client.get_token()

        assert credential.id_token == "not-a-jwt"


@pytest.mark.unit
@pytest.mark.oidc
class TestRefreshToken:
    """Test suite for the refresh-token grant."""

    def test_refresh_grant(self, mock_session):
        body = TokenResponseFactory()
        mock_session.post.return_value = make_response(200, body)
        client = _client(
            mock_session,
            scopes=["openid"],
            root={"user": {"username": "alice", "password": "wonderland"}},
        )

        credential = client.refresh_token("valid_refresh")

        _, data, kwargs = _posted(mock_session)
        assert data == {"grant_type": "refresh_token", "refresh_token": "valid_refresh"}
        assert kwargs["auth"] == ("authk-client", "s3cr3t")
        assert isinstance(credential, Credential)
        assert credential.access_token == body["access_token"]

    def test_refresh_with_post_auth(self, mock_session):
        mock_session.post.return_value = make_response(200, TokenResponseFactory())
        client = _client(mock_session, authMethod="post")

        client.refresh_token("valid_refresh")

        _, data, kwargs = _posted(mock_session)
        assert data["client_id"] == "authk-client"
        assert data["client_secret"] == "s3cr3t"
        assert kwargs["auth"] is None

    def test_refresh_keeps_sent_token_when_response_omits_it(self, mock_session):
        mock_session.post.return_value = make_response(200, {"access_token": "a2", "expires_in": 3600})
        client = _client(mock_session)

        credential = client.refresh_token("r1")

        assert credential.access_token == "a2"
        assert credential.refresh_token == "r1"
        assert credential.expires_in == 3600

    def test_refresh_uses_rotated_token_when_returned(self, mock_session):
        mock_session.post.return_value = make_response(200, {"access_token": "a2", "refresh_token": "r2"})
        client = _client(mock_session)

        assert client.refresh_token("r1").refresh_token == "r2"

    @pytest.mark.parametrize("refresh_token", [None, ""])
    def test_missing_refresh_token_fails_without_request(self, mock_session, refresh_token):
        client = _client(mock_session)

        with pytest.raises(TokenError, match="no refresh token"):
            client.refresh_token(refresh_token)

        mock_session.post.assert_not_called()

    def test_rejected_refresh(self, mock_session):
        mock_session.post.return_value = make_response(400, {"error": "invalid_grant"})
        client = _client(mock_session)

        with pytest.raises(TokenRequestError) as exc_info:
            client.refresh_token("expired_refresh")

        assert exc_info.value.status_code == 400


@pytest.mark.unit
@pytest.mark.oidc
class TestCredential:
    """Test suite for the Credential model."""

    def test_expires_in_defaults_to_zero(self):
        assert Credential(access_token="abc").expires_in == 0

    def test_numeric_string_expires_in_is_coerced(self):
        assert Credential.model_validate({"access_token": "abc", "expires_in": "120"}).expires_in == 120

    def test_credential_is_immutable(self):
        credential = Credential(access_token="abc", expires_in=60)

        with pytest.raises(ValidationError):
            credential.expires_in = 0

    def test_unknown_fields_are_ignored(self):
        credential = Credential.model_validate({"access_token": "abc", "not-before-policy": 0})

        assert credential.access_token == "abc"
