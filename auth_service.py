"""
Identity Resolver
Extracts the caller identity from a bearer JWT.

When AUTH_JWT_SECRET is configured the HS256 signature is verified before any
claim is trusted. Without it the token is decoded only, which assumes an
upstream gateway already verified it.
"""
import base64
import binascii
import json
import logging
import time
from dataclasses import dataclass
from typing import Optional

from cryptography.exceptions import InvalidSignature as _CryptoInvalidSignature
from cryptography.hazmat.primitives import hashes, hmac
from fastapi import Header

from config import Settings
from coach.errors import (
    MissingCredential,
    MalformedCredential,
    ExpiredCredential,
    MissingSubject,
    InvalidSignature,
)

# Logger yapılandırması
logger = logging.getLogger(__name__)

if not Settings.AUTH_JWT_SECRET:
    logger.warning("AUTH_JWT_SECRET not set - bearer tokens are decoded without signature verification")


@dataclass(frozen=True)
class Identity:
    subject: str
    email: Optional[str] = None


def _b64url_decode(segment: str) -> bytes:
    # JWT segments are unpadded base64url
    padded = segment + "=" * (-len(segment) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def _decode_json_segment(segment: str, name: str) -> dict:
    try:
        data = json.loads(_b64url_decode(segment).decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise MalformedCredential(f"Failed to decode token {name}: {e}")
    if not isinstance(data, dict):
        raise MalformedCredential(f"Token {name} is not a JSON object")
    return data


def _verify_signature(header_segment: str, payload_segment: str, signature_segment: str, secret: str):
    header = _decode_json_segment(header_segment, "header")
    if header.get("alg") != "HS256":
        raise InvalidSignature(f"Unsupported signing algorithm: {header.get('alg')}")

    try:
        signature = _b64url_decode(signature_segment)
    except (binascii.Error, ValueError):
        raise InvalidSignature("Token signature is not valid base64url")

    mac = hmac.HMAC(secret.encode("utf-8"), hashes.SHA256())
    mac.update(f"{header_segment}.{payload_segment}".encode("ascii"))
    try:
        mac.verify(signature)
    except _CryptoInvalidSignature:
        raise InvalidSignature("Token signature does not match")


def resolve_identity(token: str, secret: Optional[str] = None, now: Optional[float] = None) -> Identity:
    """
    Resolve a bearer token into an Identity.

    Args:
        token: Raw JWT (without the "Bearer " prefix)
        secret: HS256 signing secret. None = decode only
        now: Current unix time, defaults to time.time()

    Raises:
        MalformedCredential, InvalidSignature, ExpiredCredential, MissingSubject
    """
    parts = token.split(".")
    if len(parts) != 3:
        raise MalformedCredential("Token must have 3 parts separated by dots")

    header_segment, payload_segment, signature_segment = parts

    if secret:
        _verify_signature(header_segment, payload_segment, signature_segment, secret)

    payload = _decode_json_segment(payload_segment, "payload")

    current = time.time() if now is None else now
    exp = payload.get("exp")
    if exp is not None:
        try:
            expired = float(exp) < current
        except (TypeError, ValueError):
            raise MalformedCredential("Token 'exp' claim is not numeric")
        if expired:
            raise ExpiredCredential("Token has expired")

    subject = payload.get("sub")
    if not subject:
        raise MissingSubject("Token missing 'sub' (user ID)")

    return Identity(subject=str(subject), email=payload.get("email"))


def extract_bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise MissingCredential()
    scheme, _, rest = authorization.strip().partition(" ")
    token = rest.strip() if scheme.lower() == "bearer" else authorization.strip()
    if not token:
        raise MissingCredential("Empty token in Authorization header", error="Invalid JWT")
    return token


async def get_current_identity(authorization: Optional[str] = Header(default=None)) -> Identity:
    """
    FastAPI dependency: resolves the caller from the Authorization header.
    """
    token = extract_bearer_token(authorization)
    try:
        return resolve_identity(token, secret=Settings.AUTH_JWT_SECRET)
    except (MalformedCredential, ExpiredCredential, MissingSubject, InvalidSignature) as e:
        logger.info(f"Rejected bearer token: {e}")
        raise
