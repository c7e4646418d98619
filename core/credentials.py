"""Exchange a CI workload identity token for temporary AWS credentials.

The token comes from (in order) an explicit value, the file named by
``AWS_WEB_IDENTITY_TOKEN_FILE``, or the GitHub Actions OIDC endpoint. It is
traded through STS ``AssumeRoleWithWebIdentity``; nothing is written to disk
and the resulting credentials live only as long as the caller keeps them.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import os
import re
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping

import boto3
import httpx
from botocore import UNSIGNED
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from core.constants import WEB_IDENTITY_AUDIENCE
from core.errors import AuthError

logger = logging.getLogger(__name__)

STS_ERROR_CODES = {
    "IDPRejectedClaim": "idp_rejected",
    "IDPCommunicationError": "idp_error",
    "InvalidIdentityToken": "invalid_token",
    "ExpiredTokenException": "token_expired",
    "RegionDisabledException": "region_disabled",
    "AccessDenied": "access_denied",
    "MalformedPolicyDocument": "policy_error",
}


@dataclass(frozen=True)
class TemporaryCredentials:
    access_key_id: str
    secret_access_key: str
    session_token: str
    expiration: datetime
    assumed_role_arn: str

    def __repr__(self) -> str:
        return (
            f"TemporaryCredentials(access_key_id={self.access_key_id[:4]}***, "
            f"role={self.assumed_role_arn}, expiration={self.expiration.isoformat()})"
        )

    def as_env(self, region: str) -> dict[str, str]:
        return {
            "AWS_ACCESS_KEY_ID": self.access_key_id,
            "AWS_SECRET_ACCESS_KEY": self.secret_access_key,
            "AWS_SESSION_TOKEN": self.session_token,
            "AWS_REGION": region,
            "AWS_DEFAULT_REGION": region,
        }

    def session(self, region: str) -> boto3.Session:
        return boto3.Session(
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            aws_session_token=self.session_token,
            region_name=region,
        )


def token_expiry(token: str) -> int | None:
    """Return the JWT ``exp`` claim without verifying the signature."""
    parts = token.split(".")
    if len(parts) != 3:
        return None
    padded = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (ValueError, UnicodeDecodeError):
        return None
    exp = claims.get("exp") if isinstance(claims, dict) else None
    return int(exp) if isinstance(exp, (int, float)) else None


class WebIdentityTokenSource:
    """Locate the workload identity token issued to this CI job."""

    def __init__(
        self,
        token: str | None = None,
        environ: Mapping[str, str] | None = None,
        http_client: httpx.Client | None = None,
        audience: str = WEB_IDENTITY_AUDIENCE,
    ) -> None:
        self._token = token
        self._environ = os.environ if environ is None else environ
        self._http = http_client
        self._audience = audience

    def fetch(self) -> str:
        if self._token:
            return self._token

        token_file = self._environ.get("AWS_WEB_IDENTITY_TOKEN_FILE")
        if token_file:
            try:
                with open(token_file, "r", encoding="utf-8") as handle:
                    token = handle.read().strip()
            except OSError as exc:
                raise AuthError(f"Cannot read web identity token file {token_file}: {exc}", "missing_token") from exc
            if token:
                return token

        request_url = self._environ.get("ACTIONS_ID_TOKEN_REQUEST_URL")
        request_token = self._environ.get("ACTIONS_ID_TOKEN_REQUEST_TOKEN")
        if request_url and request_token:
            return self._fetch_github_token(request_url, request_token)

        raise AuthError(
            "No workload identity token available (set AWS_WEB_IDENTITY_TOKEN_FILE or grant id-token: write)",
            "missing_token",
        )

    def _fetch_github_token(self, url: str, bearer: str) -> str:
        client = self._http or httpx.Client(timeout=10.0)
        try:
            response = client.get(
                url,
                params={"audience": self._audience},
                headers={"Authorization": f"bearer {bearer}", "Accept": "application/json"},
            )
            response.raise_for_status()
            value = response.json().get("value")
        except (httpx.HTTPError, ValueError) as exc:
            raise AuthError(f"OIDC token request failed: {exc}", "idp_error") from exc
        finally:
            if self._http is None:
                client.close()
        if not value:
            raise AuthError("OIDC token response did not contain a token", "missing_token")
        return str(value)


def session_name(environ: Mapping[str, str] | None = None) -> str:
    """Build a RoleSessionName (2-64 chars of ``[\\w+=,.@-]``) traceable to the CI run."""
    env = os.environ if environ is None else environ
    parts = ["iacgate", env.get("GITHUB_REPOSITORY", ""), env.get("GITHUB_RUN_ID", "")]
    raw = "-".join(part for part in parts if part) or "iacgate"
    safe = re.sub(r"[^a-zA-Z0-9=,.@_-]", "-", raw)
    safe = re.sub(r"-+", "-", safe).strip("-")
    if len(safe) > 64:
        suffix = hashlib.sha256(raw.encode()).hexdigest()[:8]
        safe = safe[:55] + "-" + suffix
    return safe if len(safe) >= 2 else "iacgate"


class CredentialBroker:
    """Trade the job's identity token for credentials scoped to one role."""

    def __init__(
        self,
        token_source: WebIdentityTokenSource | None = None,
        duration_seconds: int = 3600,
        client_factory: Any | None = None,
        clock: Any = time.time,
    ) -> None:
        self._tokens = token_source or WebIdentityTokenSource()
        self._duration = duration_seconds
        self._client_factory = client_factory or self._unsigned_client
        self._clock = clock

    @staticmethod
    def _unsigned_client(region: str) -> Any:
        # AssumeRoleWithWebIdentity is called without prior AWS credentials.
        return boto3.client(
            "sts",
            region_name=region,
            config=Config(signature_version=UNSIGNED, retries={"max_attempts": 2}),
        )

    def exchange(self, role_identity: str, region: str) -> TemporaryCredentials:
        if not role_identity:
            raise AuthError("roleIdentity is required for credential exchange", "missing_role")

        token = self._tokens.fetch()
        expiry = token_expiry(token)
        if expiry is not None and expiry <= self._clock():
            raise AuthError("Workload identity token has expired", "token_expired")

        name = session_name()
        try:
            client = self._client_factory(region)
            response = client.assume_role_with_web_identity(
                RoleArn=role_identity,
                RoleSessionName=name,
                WebIdentityToken=token,
                DurationSeconds=self._duration,
            )
        except ClientError as exc:
            error = exc.response.get("Error", {})
            code = error.get("Code", "Unknown")
            logger.warning("STS rejected web identity exchange for %s: %s", role_identity, code)
            raise AuthError(error.get("Message", str(exc)), STS_ERROR_CODES.get(code, "sts_error")) from exc
        except BotoCoreError as exc:
            raise AuthError(f"STS call failed: {exc}", "sts_error") from exc

        creds = response["Credentials"]
        assumed = response.get("AssumedRoleUser", {})
        logger.info("Assumed role %s (session=%s)", role_identity, name)
        return TemporaryCredentials(
            access_key_id=creds["AccessKeyId"],
            secret_access_key=creds["SecretAccessKey"],
            session_token=creds["SessionToken"],
            expiration=creds["Expiration"],
            assumed_role_arn=assumed.get("Arn", role_identity),
        )


__all__ = ["CredentialBroker", "TemporaryCredentials", "WebIdentityTokenSource", "session_name", "token_expiry"]
