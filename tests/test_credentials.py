"""Workload identity exchange tests."""

import base64
import json
from datetime import datetime, timezone

import httpx
import pytest
from botocore.exceptions import ClientError

from core.credentials import CredentialBroker, TemporaryCredentials, WebIdentityTokenSource, session_name, token_expiry
from core.errors import AuthError

ROLE = "arn:aws:iam::123456789012:role/deployer"


def _jwt(exp):
    def part(data):
        return base64.urlsafe_b64encode(json.dumps(data).encode()).decode().rstrip("=")

    return f"{part({'alg': 'RS256'})}.{part({'sub': 'repo:acme/infra', 'exp': exp})}.signature"


class DummySTS:
    def __init__(self, error_code=None):
        self.error_code = error_code
        self.calls = []

    def assume_role_with_web_identity(self, **kwargs):
        self.calls.append(kwargs)
        if self.error_code:
            raise ClientError({"Error": {"Code": self.error_code, "Message": "rejected"}}, "AssumeRoleWithWebIdentity")
        return {
            "Credentials": {
                "AccessKeyId": "ASIAEXAMPLE",
                "SecretAccessKey": "secret",
                "SessionToken": "session-token",
                "Expiration": datetime(2030, 1, 1, tzinfo=timezone.utc),
            },
            "AssumedRoleUser": {"Arn": "arn:aws:sts::123456789012:assumed-role/deployer/iacgate"},
        }


def _broker(sts, token="plain-token", now=1_000):
    return CredentialBroker(
        token_source=WebIdentityTokenSource(token=token),
        duration_seconds=900,
        client_factory=lambda region: sts,
        clock=lambda: now,
    )


def test_exchange_returns_temporary_credentials():
    sts = DummySTS()
    creds = _broker(sts).exchange(ROLE, "us-east-1")

    assert creds.access_key_id == "ASIAEXAMPLE"
    assert creds.assumed_role_arn.endswith("assumed-role/deployer/iacgate")
    call = sts.calls[0]
    assert call["RoleArn"] == ROLE
    assert call["WebIdentityToken"] == "plain-token"
    assert call["DurationSeconds"] == 900


def test_credentials_repr_is_redacted():
    creds = _broker(DummySTS()).exchange(ROLE, "us-east-1")
    text = repr(creds)
    assert "secret" not in text
    assert "session-token" not in text
    assert "ASIA***" in text


def test_credentials_env_for_processes():
    creds = TemporaryCredentials("AKIA", "s", "t", datetime(2030, 1, 1, tzinfo=timezone.utc), ROLE)
    env = creds.as_env("eu-west-1")
    assert env["AWS_SESSION_TOKEN"] == "t"
    assert env["AWS_DEFAULT_REGION"] == "eu-west-1"


@pytest.mark.parametrize(
    "code, mapped",
    [
        ("IDPRejectedClaim", "idp_rejected"),
        ("InvalidIdentityToken", "invalid_token"),
        ("AccessDenied", "access_denied"),
        ("SomethingElse", "sts_error"),
    ],
)
def test_sts_errors_become_auth_errors(code, mapped):
    with pytest.raises(AuthError) as excinfo:
        _broker(DummySTS(error_code=code)).exchange(ROLE, "us-east-1")
    assert excinfo.value.code == mapped
    assert excinfo.value.stage == "credentials"


def test_expired_token_never_reaches_sts():
    sts = DummySTS()
    with pytest.raises(AuthError) as excinfo:
        _broker(sts, token=_jwt(exp=500), now=1_000).exchange(ROLE, "us-east-1")
    assert excinfo.value.code == "token_expired"
    assert sts.calls == []


def test_missing_role_is_auth_error():
    with pytest.raises(AuthError) as excinfo:
        _broker(DummySTS()).exchange("", "us-east-1")
    assert excinfo.value.code == "missing_role"


def test_token_expiry_reads_exp_claim():
    assert token_expiry(_jwt(exp=1234)) == 1234
    assert token_expiry("not-a-jwt") is None


def test_token_from_file(tmp_path):
    token_file = tmp_path / "token"
    token_file.write_text("file-token\n", encoding="utf-8")
    source = WebIdentityTokenSource(environ={"AWS_WEB_IDENTITY_TOKEN_FILE": str(token_file)})
    assert source.fetch() == "file-token"


def test_token_from_github_oidc_endpoint():
    seen = {}

    def handler(request):
        seen["audience"] = request.url.params["audience"]
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(200, json={"value": "oidc-token"})

    client = httpx.Client(transport=httpx.MockTransport(handler))
    source = WebIdentityTokenSource(
        environ={
            "ACTIONS_ID_TOKEN_REQUEST_URL": "https://token.actions.example/issue?api-version=2",
            "ACTIONS_ID_TOKEN_REQUEST_TOKEN": "request-bearer",
        },
        http_client=client,
    )

    assert source.fetch() == "oidc-token"
    assert seen == {"audience": "sts.amazonaws.com", "auth": "bearer request-bearer"}


def test_github_endpoint_failure_is_auth_error():
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(403, json={})))
    source = WebIdentityTokenSource(
        environ={"ACTIONS_ID_TOKEN_REQUEST_URL": "https://token.actions.example/issue", "ACTIONS_ID_TOKEN_REQUEST_TOKEN": "x"},
        http_client=client,
    )
    with pytest.raises(AuthError) as excinfo:
        source.fetch()
    assert excinfo.value.code == "idp_error"


def test_no_token_source_available():
    with pytest.raises(AuthError) as excinfo:
        WebIdentityTokenSource(environ={}).fetch()
    assert excinfo.value.code == "missing_token"


def test_session_name_is_sanitized():
    name = session_name({"GITHUB_REPOSITORY": "acme/infra repo", "GITHUB_RUN_ID": "42"})
    assert name == "iacgate-acme-infra-repo-42"
    long_name = session_name({"GITHUB_REPOSITORY": "x" * 100})
    assert len(long_name) <= 64
    assert session_name({}) == "iacgate"
