"""Bearer token validation against the identity provider's signing keys.

Tokens are RS256 JWTs issued by Keycloak. Signing keys are fetched from the
realm JWKS endpoint on the first unknown ``kid`` and kept for the life of the
process; a rotated key is picked up by the refetch on miss.
"""
import asyncio
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional

import httpx
import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import settings
from app.core.errors import Unauthenticated, Upstream
from app.core.logging import get_logger, principal_var

logger = get_logger("sustainability.security")

_bearer = HTTPBearer(auto_error=False)

ALGORITHMS = ["RS256"]

SUPER_USER = "super_user"
APPLICATION_ADMIN = "application_admin"
ORGANIZATION_ADMIN = "organization_admin"
ORGANIZATION_USER = "organization_user"


@dataclass(frozen=True)
class OrgMembership:
    roles: FrozenSet[str] = frozenset()
    categories: FrozenSet[str] = frozenset()
    name: Optional[str] = None


@dataclass(frozen=True)
class Principal:
    sub: str
    preferred_username: str
    email: Optional[str] = None
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    organizations: Mapping[str, OrgMembership] = field(default_factory=dict)
    realm_roles: FrozenSet[str] = frozenset()

    @property
    def is_super_user(self) -> bool:
        return SUPER_USER in self.realm_roles

    @property
    def is_application_admin(self) -> bool:
        return APPLICATION_ADMIN in self.realm_roles

    @property
    def org_ids(self) -> List[str]:
        return sorted(self.organizations)

    def is_member(self, org_id: Optional[str]) -> bool:
        return org_id is not None and org_id in self.organizations

    def roles_in(self, org_id: Optional[str]) -> FrozenSet[str]:
        membership = self.organizations.get(org_id) if org_id else None
        return membership.roles if membership else frozenset()

    def categories_in(self, org_id: Optional[str]) -> FrozenSet[str]:
        membership = self.organizations.get(org_id) if org_id else None
        return membership.categories if membership else frozenset()


def _string_set(values) -> FrozenSet[str]:
    if not isinstance(values, (list, tuple, set)):
        return frozenset()
    return frozenset(str(v) for v in values if v)


def principal_from_claims(payload: dict) -> Principal:
    """Build a Principal from an already verified token payload."""
    sub = payload.get("sub")
    if not sub:
        raise Unauthenticated("token has no subject")
    username = payload.get("preferred_username")
    if not username:
        raise Unauthenticated("token has no preferred_username")

    organizations: Dict[str, OrgMembership] = {}
    raw_orgs = payload.get("organizations") or {}
    if isinstance(raw_orgs, dict):
        for key, entry in raw_orgs.items():
            # Non-object entries (e.g. a top-level "name") are not memberships
            if not isinstance(entry, dict):
                continue
            org_id = str(entry.get("id") or key)
            name = entry.get("name") or (key if entry.get("id") else None)
            organizations[org_id] = OrgMembership(
                roles=_string_set(entry.get("roles")),
                categories=_string_set(entry.get("categories")),
                name=name,
            )

    realm_access = payload.get("realm_access") or {}
    return Principal(
        sub=str(sub),
        preferred_username=str(username),
        email=payload.get("email"),
        given_name=payload.get("given_name"),
        family_name=payload.get("family_name"),
        organizations=organizations,
        realm_roles=_string_set(realm_access.get("roles") if isinstance(realm_access, dict) else None),
    )


class JwksCache:
    """kid -> public key map, filled from the JWKS endpoint on demand."""

    def __init__(self, jwks_url: str, timeout: float):
        self.jwks_url = jwks_url
        self.timeout = timeout
        self._keys: Dict[str, object] = {}
        self._lock = asyncio.Lock()

    def __contains__(self, kid: str) -> bool:
        return kid in self._keys

    async def _fetch(self) -> Dict[str, object]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(self.jwks_url)
        except httpx.HTTPError as exc:
            logger.error("JWKS fetch from %s failed: %s", self.jwks_url, exc)
            raise Upstream("identity provider unavailable")
        if resp.status_code != 200:
            logger.error("JWKS endpoint %s answered %s", self.jwks_url, resp.status_code)
            raise Upstream("identity provider unavailable")

        fetched = {}
        for jwk in resp.json().get("keys", []):
            kid = jwk.get("kid")
            if not kid or jwk.get("kty") != "RSA":
                continue
            try:
                fetched[kid] = jwt.PyJWK(jwk, algorithm="RS256").key
            except jwt.PyJWTError as exc:
                logger.warning("Skipping unusable JWKS key %s: %s", kid, exc)
        return fetched

    async def get(self, kid: str):
        key = self._keys.get(kid)
        if key is not None:
            return key
        async with self._lock:
            # Another task may have refreshed while we waited
            if kid not in self._keys:
                fetched = await self._fetch()
                self._keys.update(fetched)
                logger.info("JWKS refreshed, %d key(s) cached", len(self._keys))
        return self._keys.get(kid)


class ClaimsResolver:
    def __init__(
        self,
        jwks: JwksCache,
        audiences: Iterable[str],
        issuers: Iterable[str],
    ):
        self.jwks = jwks
        self.audiences = list(audiences)
        self.issuers = set(issuers)

    async def resolve(self, raw_token: str) -> Principal:
        if not raw_token:
            raise Unauthenticated("empty token")
        try:
            header = jwt.get_unverified_header(raw_token)
        except jwt.PyJWTError as exc:
            raise Unauthenticated(f"malformed token: {exc}")

        if header.get("alg") not in ALGORITHMS:
            raise Unauthenticated(f"unsupported algorithm {header.get('alg')}")
        kid = header.get("kid")
        if not kid:
            raise Unauthenticated("token header has no kid")

        key = await self.jwks.get(kid)
        if key is None:
            raise Unauthenticated(f"unknown key id {kid}")

        try:
            payload = jwt.decode(
                raw_token,
                key,
                algorithms=ALGORITHMS,
                audience=self.audiences,
                options={"require": ["exp", "iat", "sub", "iss", "preferred_username"], "verify_iss": False},
            )
        except jwt.PyJWTError as exc:
            raise Unauthenticated(f"token rejected: {exc}")

        if payload.get("iss") not in self.issuers:
            raise Unauthenticated(f"issuer {payload.get('iss')} not accepted")

        return principal_from_claims(payload)


claims_resolver = ClaimsResolver(
    JwksCache(settings.jwks_url, settings.IDP_TIMEOUT_SECONDS),
    audiences=settings.JWT_AUDIENCES,
    issuers=settings.JWT_ISSUERS,
)


async def get_current_principal(credentials: HTTPAuthorizationCredentials = Depends(_bearer)) -> Principal:
    if not credentials or not credentials.credentials:
        raise Unauthenticated("missing bearer token")
    principal = await claims_resolver.resolve(credentials.credentials)
    principal_var.set(principal.sub)
    return principal
