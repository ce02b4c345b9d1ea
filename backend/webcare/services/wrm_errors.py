"""
Failure taxonomy for the WP Remote Manager integration.

Every failure the client can observe is mapped onto one of these classes
before it reaches a caller. Each carries a stable ``code`` used for
remediation messaging and the HTTP status the dashboard API answers with.
"""
from typing import Optional

from webcare.models.website import ConnectionStatus


class RemoteManagerError(Exception):
    code = "REMOTE_ERROR"
    http_status = 502
    default_message = "The WordPress site returned an error."

    def __init__(self, message: Optional[str] = None, *, status_code: Optional[int] = None,
                 remote_code: Optional[str] = None):
        self.message = str(message) if message else self.default_message
        self.status_code = status_code
        self.remote_code = remote_code
        super().__init__(self.message)

    def to_dict(self):
        return {"code": self.code, "message": self.message}


class InvalidApiKey(RemoteManagerError):
    code = "INVALID_API_KEY"
    http_status = 401
    default_message = (
        "Invalid API key. Please verify the key in your WordPress admin "
        "(Settings → WP Remote Manager) or regenerate it."
    )


class PluginNotInstalled(RemoteManagerError):
    code = "PLUGIN_NOT_INSTALLED"
    http_status = 404
    default_message = (
        "WP Remote Manager plugin endpoints not found. Please install and activate "
        "the latest plugin version on the WordPress site."
    )


class SiteUnreachable(RemoteManagerError):
    code = "SITE_UNREACHABLE"
    http_status = 502
    default_message = (
        "Cannot connect to the WordPress site. Please check that the URL is correct "
        "and the hosting is up."
    )


class RequestTimeout(SiteUnreachable):
    code = "TIMEOUT"
    http_status = 504
    default_message = (
        "Connection timed out. The WordPress site may be temporarily unavailable or slow to respond."
    )


class UnexpectedResponseFormat(RemoteManagerError):
    code = "UNEXPECTED_RESPONSE_FORMAT"
    http_status = 502
    default_message = (
        "The WordPress site returned an error page instead of API data. "
        "It may be in maintenance or experiencing issues."
    )


class RateLimited(RemoteManagerError):
    code = "RATE_LIMITED"
    http_status = 429
    default_message = "Rate limit exceeded on the WordPress site. Please wait before retrying."


class RemoteSiteError(RemoteManagerError):
    code = "REMOTE_ERROR"


class SiteConfigurationError(RemoteManagerError):
    """The stored URL or credential cannot be used to reach the site at all."""
    code = "INVALID_SITE_CONFIGURATION"
    http_status = 400
    default_message = "The website's stored connection settings are invalid."


class MissingApiKey(SiteConfigurationError):
    code = "NO_API_KEY"
    default_message = (
        "WP Remote Manager API key is required. Please enter your API key to connect "
        "to the WordPress site."
    )


class MalformedApiKey(SiteConfigurationError):
    code = "MALFORMED_API_KEY"
    default_message = (
        "The stored API key contains characters that cannot be sent to the site. "
        "Copy the key again from Settings → WP Remote Manager."
    )


class InvalidSiteUrl(SiteConfigurationError):
    code = "INVALID_SITE_URL"
    default_message = "The website URL is not a valid http(s) address. Please correct it."


# Failures that say something definite about the site's reachability or credential.
CONNECTION_FAILURES = (InvalidApiKey, PluginNotInstalled, SiteUnreachable, SiteConfigurationError)


def connection_status_for(error: Optional[Exception]) -> ConnectionStatus:
    """Map the outcome of a remote call onto the persisted connection status."""
    if error is None:
        return ConnectionStatus.CONNECTED
    if isinstance(error, CONNECTION_FAILURES):
        return ConnectionStatus.ERROR
    return ConnectionStatus.UNKNOWN
