class GatewayError(Exception):
    """Base class for failures reported back to the caller as an error payload."""

    kind = "gateway_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message}


class ConfigurationError(GatewayError):
    """A provider cannot be used because required configuration is missing."""

    kind = "configuration_error"
    status_code = 503


class ProviderTransportError(GatewayError):
    """Network failure, timeout, bad status or unreadable body from a provider."""

    kind = "provider_error"
    status_code = 502

    def __init__(self, provider: str, message: str):
        super().__init__(message)
        self.provider = provider

    def to_dict(self) -> dict:
        return {**super().to_dict(), "provider": self.provider}
