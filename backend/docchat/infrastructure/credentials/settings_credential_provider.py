"""Credential provider backed by application settings."""

from docchat.application.interfaces.credential_provider import CredentialProvider

API_KEY_PREFIX = "sk-ant-"
_MIN_KEY_LENGTH = 20


class SettingsCredentialProvider(CredentialProvider):
    """Serves the Anthropic API key from Settings (env / .env)."""

    def __init__(self, api_key: str):
        self._api_key = api_key.strip()

    def credentials(self) -> str:
        return self._api_key

    def is_valid_format(self, credential: str) -> bool:
        """Anthropic keys start with ``sk-ant-`` and are longer than 20 characters."""
        return credential.startswith(API_KEY_PREFIX) and len(credential) > _MIN_KEY_LENGTH
