from urllib.parse import urlsplit

from clipflow.exceptions import ProviderConfigValidationError, ValidationKind

_ALLOWED_SCHEMES = ("http://", "https://")
MEDIA_URL_SCHEMES = ("http", "https", "blob", "file")


def normalize_endpoint(endpoint: str) -> str:
    """
    Validate a provider endpoint and return its canonical form.

    The canonical form has a lowercase scheme and host, no trailing slash on
    the path, and keeps any query string.

    Raises:
        ProviderConfigValidationError: MISSING_ENDPOINT for blank input,
            MALFORMED_ENDPOINT for anything that is not an http(s) URL with a host,
            or that carries userinfo or a #fragment.
    """
    trimmed = (endpoint or "").strip()
    if not trimmed:
        raise ProviderConfigValidationError(
            ValidationKind.MISSING_ENDPOINT,
            "Endpoint URL is required",
        )

    if not trimmed.lower().startswith(_ALLOWED_SCHEMES):
        raise ProviderConfigValidationError(
            ValidationKind.MALFORMED_ENDPOINT,
            "Endpoint must start with http:// or https://",
            detail=trimmed,
        )

    try:
        parts = urlsplit(trimmed)
        host = parts.hostname
        port = parts.port
    except ValueError as exc:
        raise ProviderConfigValidationError(
            ValidationKind.MALFORMED_ENDPOINT,
            "Invalid endpoint URL format. Please enter a valid URL "
            "(e.g., https://api.example.com/v1/generate)",
            detail=str(exc),
        ) from exc

    if not host:
        raise ProviderConfigValidationError(
            ValidationKind.MALFORMED_ENDPOINT,
            "Invalid endpoint URL format",
            detail=trimmed,
        )

    # The credential travels in the Authorization header, never in the URL.
    if parts.username is not None or parts.password is not None:
        raise ProviderConfigValidationError(
            ValidationKind.MALFORMED_ENDPOINT,
            "Endpoint must not contain a username or password; enter the API key separately",
        )

    if parts.fragment or trimmed.endswith("#"):
        raise ProviderConfigValidationError(
            ValidationKind.MALFORMED_ENDPOINT,
            "Endpoint must not contain a #fragment",
            detail=trimmed,
        )

    if ":" in host:
        host = f"[{host}]"
    netloc = f"{host}:{port}" if port is not None else host

    normalized = f"{parts.scheme.lower()}://{netloc}{parts.path}"
    normalized = normalized.rstrip("/")
    if parts.query:
        normalized += f"?{parts.query}"
    return normalized


def is_media_url(url: str) -> bool:
    """True for a non-empty URL with a scheme a player can load."""
    if not isinstance(url, str) or not url.strip():
        return False
    scheme = url.split(":", 1)[0].lower() if ":" in url else ""
    if scheme not in MEDIA_URL_SCHEMES:
        return False
    if scheme in ("http", "https"):
        return bool(urlsplit(url).netloc)
    return len(url) > len(scheme) + 1
