"""
Scoring engine configuration.

Every key lives in one HashiCorp Vault KV v2 secret at
``secret/rfp-scoring/{region}/{env}``. A key missing from Vault (or every
key, when ``VAULT_ADDR`` is unset) is read from the process environment,
then falls back to the caller's default. Key lookups ignore case.

    from rfp_utils.vault import secrets

    secrets.llm_api_key()
    secrets.db_type()               # "mock" unless configured
    secrets.get("channel_id", default="")
"""

import os
import logging
from typing import Any, Dict, Optional

import hvac

logger = logging.getLogger("RFPScoringBE")

KV_MOUNT = "secret"

DEFAULT_LLM_BASE_URL = "https://apis.abacus.ai"
DEFAULT_LLM_CHAT_PATH = "/chatllm/chat"
DB_TYPES = ("mock", "postgres")


def _login(client: hvac.Client) -> str:
    """Authenticate with AppRole, else a static token. Returns the method used, or ""."""
    role_id = os.getenv("VAULT_ROLE_ID")
    secret_id = os.getenv("VAULT_SECRET_ID")
    if role_id and secret_id:
        client.auth.approle.login(role_id=role_id, secret_id=secret_id)
        return "approle"

    token = os.getenv("VAULT_TOKEN")
    if token:
        client.token = token
        return "token"
    return ""


def _from_env(key: str) -> Optional[str]:
    for name in dict.fromkeys((key, key.upper(), key.lower())):
        value = os.getenv(name)
        if value:
            return value
    return None


class VaultClient:
    def __init__(
        self,
        vault_addr: Optional[str] = None,
        region: Optional[str] = None,
        env: Optional[str] = None,
    ):
        if vault_addr is None:
            vault_addr = os.getenv("VAULT_ADDR") or ""
        self.vault_addr = vault_addr.strip()
        self.region = region or os.getenv("RFP_SCORING_REGION", "default")
        self.env = env or os.getenv("RFP_SCORING_ENV", "dev")
        # lower-cased keys; None until the first lookup reads Vault
        self._values: Optional[Dict[str, Any]] = None

    @property
    def path(self) -> str:
        return f"rfp-scoring/{self.region}/{self.env}"

    def _read_vault(self) -> Dict[str, Any]:
        if not self.vault_addr:
            return {}

        try:
            client = hvac.Client(url=self.vault_addr)
            method = _login(client)
            if not method:
                logger.warning("VAULT_ADDR is set but no Vault credentials are configured")
                return {}
            response = client.secrets.kv.v2.read_secret_version(
                path=self.path, mount_point=KV_MOUNT
            )
        except Exception as e:
            logger.warning(f"Vault unavailable for {self.path}, using environment: {e}")
            return {}

        data = response["data"]["data"]
        logger.info(f"Loaded {len(data)} settings from Vault ({self.path}, {method})")
        return {str(k).lower(): v for k, v in data.items()}

    def _vault_values(self) -> Dict[str, Any]:
        if self._values is None:
            self._values = self._read_vault()
        return self._values

    def refresh(self) -> None:
        """Drop cached Vault values; the next lookup reads Vault again."""
        self._values = None

    def get(self, key: str, default: Optional[str] = None) -> str:
        """
        Vault value, else environment value, else ``default``.

        Raises:
            KeyError: the key is set nowhere and no default was given.
        """
        value = self._vault_values().get(key.lower())
        if value is None or value == "":
            value = _from_env(key)
        if value is not None:
            return value
        if default is not None:
            return default
        raise KeyError(f"Setting '{key}' not found in Vault ({self.path}) or environment")

    # Engine settings

    def llm_api_key(self) -> str:
        return self.get("LLM_API_KEY", default="")

    def llm_base_url(self) -> str:
        return self.get("LLM_BASE_URL", default=DEFAULT_LLM_BASE_URL)

    def llm_chat_path(self) -> str:
        return self.get("LLM_CHAT_PATH", default=DEFAULT_LLM_CHAT_PATH)

    def db_type(self) -> str:
        db_type = str(self.get("db_type", default="mock")).strip().lower() or "mock"
        if db_type not in DB_TYPES:
            raise ValueError(f"Unsupported db_type '{db_type}' (expected one of {DB_TYPES})")
        return db_type

    def postgres_url(self) -> str:
        return self.get("postgres_url", default="")

    def slack_token(self) -> str:
        return self.get("slack_token", default="")

    def slack_channel_id(self) -> str:
        return self.get("channel_id", default="")

    def environment(self) -> str:
        return self.get("RFP_SCORING_ENV", default=self.env)


secrets = VaultClient()
