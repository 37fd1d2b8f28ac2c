"""Authenticator selection and challenge-response authentication flows.

Basic credentials are sent pre-emptively as a request header by the Request
Assembler. Digest and NTLM are challenge-response schemes wired into the
transport and triggered reactively on a 401.

Selection precedence is fixed: NTLM, then Digest, then Basic, then none.
"""

import base64
import threading
from collections.abc import Generator
from dataclasses import dataclass, field

import httpx
import spnego
import structlog

from invokehttp.config.schemas import AuthConfig


logger = structlog.get_logger()

HTTP_STATUS_UNAUTHORIZED = 401


def basic_authorization_header(auth: AuthConfig) -> str | None:
    """Build the pre-emptive Basic Authorization header value.

    The header is produced whenever a username is configured and Digest is
    not enabled, including when NTLM is configured.

    Args:
        auth: Credential configuration.

    Returns:
        Header value, or None if no Basic header should be sent.
    """
    username = auth.username.strip()
    if not username or auth.use_digest:
        return None
    credentials = f"{username}:{auth.password.strip()}".encode()
    return "Basic " + base64.b64encode(credentials).decode("ascii")


def route_key(url: httpx.URL) -> str:
    """Key identifying the authentication route of a URL."""
    port = url.port or (443 if url.scheme == "https" else 80)
    return f"{url.scheme}://{url.host}:{port}"


class DigestAuthCache:
    """Thread-safe map of route to the last negotiated Digest challenge.

    Shared by every exchange using the same transport handle.
    """

    def __init__(self) -> None:
        self._entries: dict[str, object] = {}
        self._lock = threading.Lock()

    def get(self, route: str) -> object | None:
        """Get the cached challenge for a route."""
        with self._lock:
            return self._entries.get(route)

    def put(self, route: str, challenge: object) -> None:
        """Store the challenge negotiated for a route."""
        with self._lock:
            self._entries[route] = challenge

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class CachingDigestAuth(httpx.DigestAuth):
    """Digest authentication that consults a shared challenge cache first.

    A cached challenge lets requests authenticate without a 401 round trip.
    The cache is updated after every successful challenge parse.
    """

    def __init__(self, username: str, password: str, cache: DigestAuthCache) -> None:
        """Initialize the Digest flow.

        Args:
            username: Digest username.
            password: Digest password.
            cache: Challenge cache shared across exchanges.
        """
        super().__init__(username, password)
        self._cache = cache
        self._header_lock = threading.Lock()

    def auth_flow(
        self, request: httpx.Request
    ) -> Generator[httpx.Request, httpx.Response, None]:
        route = route_key(request.url)
        cached = self._cache.get(route)
        if cached is not None:
            request.headers["Authorization"] = self._authorize(request, cached)

        response = yield request

        if (
            response.status_code != HTTP_STATUS_UNAUTHORIZED
            or "www-authenticate" not in response.headers
        ):
            return

        for auth_header in response.headers.get_list("www-authenticate"):
            if auth_header.lower().startswith("digest "):
                break
        else:
            return

        challenge = self._parse_challenge(request, response, auth_header)
        self._cache.put(route, challenge)
        logger.debug("digest_challenge_cached", component="auth", route=route)

        request.headers["Authorization"] = self._authorize(
            request, challenge, reset_count=True
        )
        if response.cookies:
            httpx.Cookies(response.cookies).set_cookie_header(request=request)
        yield request

    def _authorize(
        self, request: httpx.Request, challenge: object, reset_count: bool = False
    ) -> str:
        # The nonce counter is shared by concurrent exchanges.
        with self._header_lock:
            if reset_count:
                self._nonce_count = 1
            return self._build_auth_header(request, challenge)  # type: ignore[arg-type]


class NtlmAuth(httpx.Auth):
    """NTLM challenge-response authentication backed by pyspnego."""

    def __init__(self, username: str, password: str, domain: str) -> None:
        """Initialize the NTLM flow.

        Args:
            username: Account name.
            password: Account password.
            domain: NTLM domain of the account.
        """
        self._principal = f"{domain}\\{username}"
        self._password = password

    def auth_flow(
        self, request: httpx.Request
    ) -> Generator[httpx.Request, httpx.Response, None]:
        response = yield request
        if response.status_code != HTTP_STATUS_UNAUTHORIZED:
            return

        scheme = _ntlm_scheme(response.headers.get_list("www-authenticate"))
        if scheme is None:
            return

        context = spnego.client(
            self._principal,
            self._password,
            hostname=request.url.host,
            service="http",
            protocol="ntlm",
        )
        negotiate = context.step()
        request.headers["Authorization"] = _token_header(scheme, negotiate)
        response = yield request

        server_token = _server_token(
            response.headers.get_list("www-authenticate"), scheme
        )
        if response.status_code != HTTP_STATUS_UNAUTHORIZED or server_token is None:
            return

        authenticate = context.step(server_token)
        request.headers["Authorization"] = _token_header(scheme, authenticate)
        yield request


def _ntlm_scheme(challenges: list[str]) -> str | None:
    offered = {value.split(" ", 1)[0].strip().lower() for value in challenges}
    if "ntlm" in offered:
        return "NTLM"
    if "negotiate" in offered:
        return "Negotiate"
    return None


def _server_token(challenges: list[str], scheme: str) -> bytes | None:
    prefix = scheme.lower() + " "
    for value in challenges:
        if value.lower().startswith(prefix):
            return base64.b64decode(value[len(prefix) :].strip())
    return None


def _token_header(scheme: str, token: bytes | None) -> str:
    return f"{scheme} {base64.b64encode(token or b'').decode('ascii')}"


@dataclass(frozen=True)
class NoAuthenticator:
    """No credentials configured."""

    def to_httpx_auth(self) -> httpx.Auth | None:
        """Transport-level auth hook, if any."""
        return None


@dataclass(frozen=True)
class BasicAuthenticator:
    """Pre-emptive Basic credentials, sent as a request header."""

    header: str

    def to_httpx_auth(self) -> httpx.Auth | None:
        """Transport-level auth hook, if any."""
        return None


@dataclass(frozen=True)
class DigestAuthenticator:
    """Digest credentials with a shared challenge cache."""

    username: str
    password: str
    cache: DigestAuthCache = field(default_factory=DigestAuthCache)

    def to_httpx_auth(self) -> httpx.Auth | None:
        """Transport-level auth hook, if any."""
        return CachingDigestAuth(self.username, self.password, self.cache)


@dataclass(frozen=True)
class NtlmAuthenticator:
    """NTLM credentials for a domain account."""

    username: str
    password: str
    domain: str

    def to_httpx_auth(self) -> httpx.Auth | None:
        """Transport-level auth hook, if any."""
        return NtlmAuth(self.username, self.password, self.domain)


Authenticator = (
    NoAuthenticator | BasicAuthenticator | DigestAuthenticator | NtlmAuthenticator
)


def select_authenticator(auth: AuthConfig) -> Authenticator:
    """Select the authenticator for a credential configuration.

    NTLM requires a username and a domain; Digest requires a username. If
    both flags are set NTLM wins.

    Args:
        auth: Credential configuration.

    Returns:
        The selected authenticator variant.
    """
    username = auth.username.strip()
    password = auth.password.strip()
    domain = auth.ntlm_domain.strip()

    if username and domain and auth.use_ntlm:
        return NtlmAuthenticator(username=username, password=password, domain=domain)
    if username and auth.use_digest:
        return DigestAuthenticator(username=username, password=password)

    header = basic_authorization_header(auth)
    if header is not None:
        return BasicAuthenticator(header=header)
    return NoAuthenticator()
