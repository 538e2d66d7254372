"""Value types passed between the RMS components and their collaborators."""

from typing import NamedTuple, Optional


class Client(NamedTuple):
    """The remote end of the current request."""

    ip: str
    """IP address of the client."""

    user_agent: str
    """``User-Agent`` header as sent by the client."""

    secure: bool = False
    """Whether the request arrived over a secure transport."""


class Visit(NamedTuple):
    """Where a new user came from, recorded when the account is created."""

    landing_page: Optional[str] = None
    """First page of the site the visitor saw."""

    referrer_page: Optional[str] = None
    """Page that sent the visitor to us."""


class VerifiedIdentity(NamedTuple):
    """An identity vouched for by an external identity provider."""

    email: str
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    picture: Optional[str] = None
