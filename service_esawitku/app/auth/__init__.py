"""
Authentication helpers for the eSawitKu API.
"""

from .directory_client import DirectoryUser, UserDirectoryClient
from .jwks import JWKSTokenVerifier, VerifiedToken
from .resolver import IdentityResolver

__all__ = [
    "DirectoryUser",
    "IdentityResolver",
    "JWKSTokenVerifier",
    "UserDirectoryClient",
    "VerifiedToken",
]
