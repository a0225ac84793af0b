"""
Bearer-token authentication.

A request's token is tried against an ordered list of verifiers and the first
one that accepts it decides the caller's Identity:

1. SelfIssuedVerifier - HS256 tokens minted by /auth/login and /auth/signup.
2. ProviderVerifier   - Firebase Auth ID tokens, checked against Google's
                        published signing keys.

A rejection by an earlier verifier is expected (a Firebase token is never a
valid self-issued token) so it is not reported; if every verifier rejects the
token the last verifier's reason goes back to the caller.
"""
from __future__ import annotations
import logging
import re
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

import jwt
from fastapi import Depends, Request
from fastapi.concurrency import run_in_threadpool
from jwt import PyJWKClient, PyJWKClientError

from config import Settings, resolve_project_id
from errors import ConfigurationError, InvalidCredential, MissingCredential
from schemas import AuthScheme, Identity
from tokens import decode_token

logger = logging.getLogger(__name__)

BEARER_RE = re.compile(r"^Bearer (.+)$")


def parse_bearer(header: Optional[str]) -> str:
    match = BEARER_RE.match(header or "")
    if not match or not match.group(1).strip():
        raise MissingCredential("Missing Bearer token")
    return match.group(1).strip()


@dataclass(frozen=True)
class Verification:
    identity: Optional[Identity] = None
    error: Optional[str] = None


class Verifier(Protocol):
    scheme: AuthScheme
    blocking: bool

    def verify(self, token: str) -> Verification: ...


class SelfIssuedVerifier:
    scheme = AuthScheme.SELF_ISSUED
    blocking = False

    def __init__(self, settings: Settings):
        self.settings = settings

    def verify(self, token: str) -> Verification:
        try:
            claims = decode_token(token, self.settings)
        except jwt.InvalidTokenError as e:
            return Verification(error=str(e))
        uid = claims.get("uid")
        if not isinstance(uid, str) or not uid:
            return Verification(error="Token has no uid")
        return Verification(identity=Identity(
            uid=uid,
            email=claims.get("email") or None,
            auth_scheme=self.scheme,
        ))


class ProviderVerifier:
    """Firebase Auth ID tokens: RS256, aud = project id, iss = securetoken/<project id>."""

    scheme = AuthScheme.PROVIDER
    blocking = True

    def __init__(self, project_id: str, jwks_client: PyJWKClient):
        self.project_id = project_id
        self.issuer = f"https://securetoken.google.com/{project_id}"
        self.jwks_client = jwks_client

    def verify(self, token: str) -> Verification:
        try:
            signing_key = self.jwks_client.get_signing_key_from_jwt(token).key
            claims = jwt.decode(
                token,
                signing_key,
                algorithms=["RS256"],
                audience=self.project_id,
                issuer=self.issuer,
                options={"require": ["exp", "iat", "sub"]},
            )
        except (PyJWKClientError, jwt.InvalidTokenError) as e:
            return Verification(error=str(e))
        uid = claims.get("sub")
        if not isinstance(uid, str) or not uid:
            return Verification(error="Token has no subject")
        return Verification(identity=Identity(
            uid=uid,
            email=claims.get("email") or None,
            name=claims.get("name") or None,
            auth_scheme=self.scheme,
        ))


class TokenAuthenticator:
    def __init__(self, verifiers: Sequence[Verifier]):
        self.verifiers = list(verifiers)

    @property
    def schemes(self) -> list[AuthScheme]:
        return [v.scheme for v in self.verifiers]

    async def authenticate(self, token: str) -> Identity:
        if not self.verifiers:
            raise ConfigurationError("No token verifier is configured")

        last_error = None
        for verifier in self.verifiers:
            if verifier.blocking:
                result = await run_in_threadpool(verifier.verify, token)
            else:
                result = verifier.verify(token)
            if result.identity is not None:
                logger.debug(f"Authenticated {result.identity.uid} via {verifier.scheme.value}")
                return result.identity
            last_error = result.error

        logger.warning(f"Token rejected: {last_error}")
        raise InvalidCredential("Invalid or expired token", last_error)


def build_authenticator(settings: Settings) -> TokenAuthenticator:
    verifiers: list[Verifier] = []
    if settings.JWT_SECRET:
        verifiers.append(SelfIssuedVerifier(settings))

    project_id = resolve_project_id(settings)
    if project_id:
        verifiers.append(ProviderVerifier(project_id, PyJWKClient(settings.FIREBASE_JWKS_URL)))
    else:
        logger.warning("No Firebase project id configured; provider tokens will be rejected")

    return TokenAuthenticator(verifiers)


def get_authenticator(request: Request) -> TokenAuthenticator:
    return request.app.state.authenticator


async def require_auth(
    request: Request,
    authenticator: TokenAuthenticator = Depends(get_authenticator),
) -> Identity:
    token = parse_bearer(request.headers.get("Authorization"))
    return await authenticator.authenticate(token)
