"""
Verify identities asserted by Google Sign-In.

The browser obtains an ID token (a JWT signed by Google) and posts it to
us. We check its signature against Google's published keys, its issuer,
audience and expiry, and then trust the e-mail in it.
"""

from typing import Optional
from urllib.parse import urlparse
import logging

import jwt
from jwt import PyJWKClient

from . import util
from .domain import VerifiedIdentity
from .exceptions import ExpiredToken, InvalidToken

logger = logging.getLogger(__name__)

GOOGLE_CERTS_URL = 'https://www.googleapis.com/oauth2/v3/certs'
GOOGLE_ISSUER_HOST = 'accounts.google.com'


class GoogleVerifier(object):
    """Turns Google ID tokens into :class:`.VerifiedIdentity`."""

    def __init__(self, client_id: Optional[str],
                 certs_url: str = GOOGLE_CERTS_URL,
                 jwks_client: Optional[PyJWKClient] = None) -> None:
        """
        Parameters
        ----------
        client_id : str
            OAuth client ID of this site; tokens must be issued to it. The
            audience is not checked if this is empty.
        certs_url : str
            Where Google publishes its signing keys.
        jwks_client : :class:`PyJWKClient`
            Key source; built from ``certs_url`` by default.

        """
        self.client_id = client_id
        self.jwks_client = jwks_client or PyJWKClient(certs_url)

    def verify(self, token: str) -> VerifiedIdentity:
        """
        Verify a Google ID token.

        Raises
        ------
        :class:`.ExpiredToken`
        :class:`.InvalidToken`
            Bad signature, issuer, audience, or no usable e-mail.

        """
        try:
            signing_key = self.jwks_client.get_signing_key_from_jwt(token)
            claims = jwt.decode(
                token,
                signing_key.key,
                algorithms=['RS256'],
                audience=self.client_id or None,
                options={'verify_aud': bool(self.client_id),
                         'require': ['exp', 'iss']},
            )
        except jwt.ExpiredSignatureError as e:
            raise ExpiredToken(f'Google token expired: {e}') from e
        except jwt.PyJWTError as e:
            raise InvalidToken(f'Google token rejected: {e}') from e

        issuer = str(claims.get('iss', ''))
        host = urlparse(issuer).hostname if '://' in issuer else issuer
        if host != GOOGLE_ISSUER_HOST:
            raise InvalidToken(f'Unexpected token issuer {issuer}')

        email = claims.get('email')
        if not util.is_valid_email(email):
            raise InvalidToken('Google token carries no valid e-mail')
        if claims.get('email_verified') is False:
            raise InvalidToken(f'Google has not verified {email}')

        return VerifiedIdentity(email=email,
                                given_name=claims.get('given_name'),
                                family_name=claims.get('family_name'),
                                picture=claims.get('picture'))
