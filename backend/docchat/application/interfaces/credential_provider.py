"""Abstract interface (port) for model endpoint credentials."""

from abc import ABC, abstractmethod


class CredentialProvider(ABC):
    """Port for auth material and its provider-specific format rule."""

    @abstractmethod
    def credentials(self) -> str:
        """Return the configured API key, or an empty string when none is set."""
        ...

    @abstractmethod
    def is_valid_format(self, credential: str) -> bool:
        """Check the credential against the provider's prefix/length rule."""
        ...
