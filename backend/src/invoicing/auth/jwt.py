"""JWT authentication with RS256 signing.

Access tokens identify the caller by email and carry the IDs of the
companies the caller belongs to. Keys are loaded from settings when
configured, otherwise an ephemeral pair is generated at startup.
"""
from datetime import timedelta
from typing import Dict, Iterable, Optional

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from invoicing.auth.policy import Actor
from invoicing.config import settings
from invoicing.utils.clock import utcnow


class JWTAuth:
    """JWT authentication handler with RS256 signing."""

    def __init__(
        self,
        private_key_pem: str | None = None,
        public_key_pem: str | None = None,
        expire_minutes: int | None = None,
    ):
        """
        Initialize JWT auth with an RSA key pair.

        Args:
            private_key_pem: PEM private key; generated when omitted
            public_key_pem: PEM public key; derived from the private key when omitted
            expire_minutes: Access token lifetime
        """
        self.algorithm = settings.jwt_algorithm
        self.access_token_expire_minutes = expire_minutes or settings.access_token_expire_minutes

        if private_key_pem:
            self._private_key = serialization.load_pem_private_key(private_key_pem.encode(), password=None)
        else:
            self._private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

        if public_key_pem:
            self._public_key = serialization.load_pem_public_key(public_key_pem.encode())
        else:
            self._public_key = self._private_key.public_key()

    def create_access_token(
        self,
        subject: str,
        email: str | None,
        company_ids: Iterable[int] = (),
        additional_claims: Optional[Dict] = None,
    ) -> str:
        """
        Create JWT access token.

        Args:
            subject: User identifier
            email: User email (matched against payroll invoice recipients)
            company_ids: Companies the user is a member of
            additional_claims: Additional JWT claims

        Returns:
            Encoded JWT token
        """
        now = utcnow()
        claims = {
            "sub": subject,
            "email": email,
            "company_ids": sorted(company_ids),
            "iat": now,
            "exp": now + timedelta(minutes=self.access_token_expire_minutes),
            "type": "access",
        }
        if additional_claims:
            claims.update(additional_claims)

        return jwt.encode(claims, self._private_key, algorithm=self.algorithm)

    def verify_access_token(self, token: str) -> Dict:
        """
        Verify and decode an access token.

        Raises:
            jwt.ExpiredSignatureError: If token is expired
            jwt.InvalidTokenError: If token is invalid or not an access token
        """
        payload = jwt.decode(token, self._public_key, algorithms=[self.algorithm])
        if payload.get("type") != "access":
            raise jwt.InvalidTokenError("Not an access token")
        return payload

    def get_public_key_pem(self) -> bytes:
        """Public key in PEM format for external verification."""
        return self._public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )


def actor_from_claims(claims: Dict) -> Actor:
    """Build the caller identity from decoded token claims."""
    return Actor(
        email=claims.get("email"),
        company_ids=frozenset(int(company_id) for company_id in claims.get("company_ids") or ()),
        subject=claims.get("sub"),
    )


# Global JWT auth instance
jwt_auth = JWTAuth(settings.jwt_private_key, settings.jwt_public_key)
