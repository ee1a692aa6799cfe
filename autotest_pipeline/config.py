"""Configuration loader for the application."""

import os
import re
from typing import Any, Dict, Optional
import yaml
from dotenv import load_dotenv, find_dotenv

# Load environment variables from .env file in project root
dotenv_path = find_dotenv(usecwd=True)
if dotenv_path:
    load_dotenv(dotenv_path)
else:
    # Fallback: try loading from current directory
    load_dotenv()


_ENV_PATTERN = re.compile(r"^\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-(.*))?\}$")


class Config:
    """Application configuration manager."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Load configuration from YAML file.

        Missing files are not fatal: the pipeline runs on built-in defaults
        and environment variables alone.

        Args:
            config_path: Path to config.yaml (defaults to ./config.yaml)
        """
        if config_path is None:
            config_path = os.path.join(os.getcwd(), "config.yaml")

        if not os.path.exists(config_path):
            # Try config.example.yaml
            example_path = config_path.replace("config.yaml", "config.example.yaml")
            config_path = example_path if os.path.exists(example_path) else None

        raw: Dict[str, Any] = {}
        if config_path:
            with open(config_path, "r") as f:
                raw = yaml.safe_load(f) or {}

        self.path = config_path
        # Substitute environment variables
        self._config = self._substitute_env_vars(raw)

    def _substitute_env_vars(self, obj: Any) -> Any:
        """Recursively substitute ${ENV_VAR} and ${ENV_VAR:-default} patterns."""
        if isinstance(obj, dict):
            return {k: self._substitute_env_vars(v) for k, v in obj.items()}
        elif isinstance(obj, list):
            return [self._substitute_env_vars(item) for item in obj]
        elif isinstance(obj, str):
            match = _ENV_PATTERN.match(obj)
            if match:
                value = os.getenv(match.group(1))
                if value:
                    return value
                return match.group(2)
            return obj
        return obj

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-separated key.

        Args:
            key: Dot-separated key (e.g., "openai.base_url")
            default: Default value if key not found or empty

        Returns:
            Configuration value
        """
        keys = key.split(".")
        value = self._config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        if value is None or value == "":
            return default
        return value

    # Convenience properties

    @property
    def openai_api_key(self) -> str:
        return self.get("openai.api_key", os.getenv("OPENAI_API_KEY", ""))

    @property
    def openai_base_url(self) -> str:
        return self.get("openai.base_url", "https://api.openai.com/v1")

    @property
    def openai_timeout(self) -> int:
        return int(self.get("openai.timeout", 300))

    @property
    def reasoning_model(self) -> str:
        return self.get("openai.models.reasoning", "gpt-4.1")

    @property
    def lightweight_model(self) -> str:
        return self.get("openai.models.lightweight", "gpt-4.1-mini")

    @property
    def backend_base_url(self) -> str:
        return self.get("backend.base_url", os.getenv("BASE_URL") or "http://localhost:3000").rstrip("/")

    @property
    def alerts_api_url(self) -> str:
        default = os.getenv("ALERTS_API_URL") or f"{self.backend_base_url}/api/alerts"
        return self.get("backend.alerts_url", default)

    @property
    def backend_timeout(self) -> float:
        return float(self.get("backend.timeout", 30))

    @property
    def github_api_url(self) -> str:
        return self.get("github.api_url", "https://api.github.com")

    @property
    def default_repository(self) -> str:
        return self.get("github.default_repository", "AntonioAEMartins/yc-24h-hackathon-agent")

    @property
    def credentials_filename(self) -> str:
        return self.get("github.credentials_file", ".docker.credentials")

    @property
    def docker_image(self) -> str:
        return self.get("docker.image", "yc-ubuntu:22.04")

    @property
    def docker_base_image(self) -> str:
        return self.get("docker.base_image", "ubuntu:22.04")

    @property
    def container_name(self) -> str:
        return self.get("docker.container_name", "yc-ubuntu-test")

    @property
    def docker_exec_timeout(self) -> int:
        return int(self.get("docker.exec_timeout", 120))

    @property
    def context_path(self) -> str:
        return self.get("docker.context_path", "/app/agent.context.json")

    @property
    def plan_path(self) -> str:
        return self.get("docker.plan_path", "/app/unit.plan.json")

    @property
    def max_test_retries(self) -> int:
        return int(self.get("pipeline.max_test_retries", 2))

    @property
    def agent_max_steps(self) -> int:
        return int(self.get("pipeline.agent_max_steps", 50))

    @property
    def test_dir(self) -> str:
        return self.get("pipeline.test_dir", "tests")

    @property
    def server_host(self) -> str:
        return self.get("server.host", "0.0.0.0")

    @property
    def server_port(self) -> int:
        return int(self.get("server.port", 4111))


# Global config instance
_config: Optional[Config] = None


def get_config(config_path: Optional[str] = None) -> Config:
    """Get or create global configuration instance."""
    global _config
    if _config is None:
        _config = Config(config_path)
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next get_config() reloads it."""
    global _config
    _config = None
