class StyleGuardError(Exception):
    """Base error for the style check service."""


class ConfigurationError(StyleGuardError):
    """Raised when the caller configuration is invalid."""


class UnknownScmProviderError(ConfigurationError):
    def __init__(self, provider):
        self.provider = provider
        super().__init__(f"Unknown SCM Provider: {provider}")


class FormatterError(StyleGuardError):
    """Raised when the external formatter cannot be run or fails."""
