"""Configuration management for the portal chat client."""

import os
from typing import Any

import yaml
from dotenv import load_dotenv

from portal_chat.llm.models import EndpointConfig

API_KEY_ENV = "CHAT_PUBLISHABLE_KEY"
BASE_URL_ENV = "CHAT_BASE_URL"


class Configuration:
    """Manages configuration and environment variables for the chat client."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables."""
        self.load_env()  # Load .env for the publishable key
        self._config_path = config_path or os.path.join(
            os.path.dirname(__file__), "config.yaml"
        )
        self._config = self._load_yaml_config()

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    def _load_yaml_config(self) -> dict[str, Any]:
        """Load configuration from YAML file."""
        with open(self._config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError(
                    f"Config file must be YAML dict, got {type(config)}"
                )
            return config

    @property
    def publishable_key(self) -> str:
        """Get the publishable key sent as the chat endpoint bearer token.

        Returns:
            The key as a string.

        Raises:
            ValueError: If the key is not found in environment variables.
        """
        api_key = os.getenv(API_KEY_ENV)
        if not api_key:
            raise ValueError(
                f"API key '{API_KEY_ENV}' not found in environment variables"
            )
        return api_key

    def get_config_dict(self) -> dict[str, Any]:
        """Get the full configuration dictionary.

        Returns:
            The complete configuration dictionary.
        """
        return self._config

    def get_chat_endpoint_config(self) -> dict[str, Any]:
        """Get chat endpoint configuration from YAML.

        ``CHAT_BASE_URL`` overrides ``chat.endpoint.base_url`` when set.

        Returns:
            Chat endpoint configuration dictionary.

        Raises:
            ValueError: If required endpoint parameters are missing.
        """
        endpoint_config = dict(self._config.get("chat", {}).get("endpoint", {}))

        if env_base_url := os.getenv(BASE_URL_ENV):
            endpoint_config["base_url"] = env_base_url

        for key in ("base_url", "path"):
            if not endpoint_config.get(key):
                raise ValueError(
                    f"chat.endpoint.{key} must be explicitly configured "
                    f"in config.yaml (or {BASE_URL_ENV} for base_url)"
                )

        timeout_config = endpoint_config.get("timeout", {})
        for key, value in timeout_config.items():
            if not isinstance(value, int | float) or value <= 0:
                raise ValueError(
                    f"chat.endpoint.timeout.{key} must be a positive number"
                )

        encoding = self.get_streaming_config().get("encoding")
        if encoding:
            endpoint_config["encoding"] = encoding

        return endpoint_config

    def get_endpoint_config(self) -> EndpointConfig:
        """Build the typed endpoint settings used by ChatEndpointClient."""
        return EndpointConfig.from_dict(
            self.get_chat_endpoint_config(), self.publishable_key
        )

    def get_session_config(self) -> dict[str, Any]:
        """Get chat session configuration from YAML.

        Returns:
            Session configuration dictionary with validated values.

        Raises:
            ValueError: If a configured limit is invalid.
        """
        session_config = self._config.get("chat", {}).get("session", {})

        max_input_chars = session_config.get("max_input_chars", 4000)
        if not isinstance(max_input_chars, int) or max_input_chars < 1:
            raise ValueError("chat.session.max_input_chars must be a positive integer")

        max_history = session_config.get("max_history_messages", 0)
        if not isinstance(max_history, int) or max_history < 0:
            raise ValueError(
                "chat.session.max_history_messages must be a non-negative integer"
            )

        return {
            "max_input_chars": max_input_chars,
            "max_history_messages": max_history,
        }

    def get_streaming_config(self) -> dict[str, Any]:
        """Get stream decoding configuration from YAML.

        Returns:
            Streaming configuration dictionary.
        """
        return self._config.get("chat", {}).get("streaming", {})

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML.

        Returns:
            Logging configuration dictionary.
        """
        return self._config.get("logging", {})
