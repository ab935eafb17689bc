"""
Signing context: account names, private keys and API credentials.
"""
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional, Tuple
import json
import logging
import os

from blockchain.eos import EosPrivateKey
from errors import ConfigurationError


@dataclass(frozen=True)
class SigningContext:
    """
    Credentials for every supported venue.

    Built once at startup and passed explicitly to each client. Secret
    fields are left out of ``repr`` so the context can be logged safely.
    """
    eos_account: Optional[str] = None
    eos_private_key: Optional[str] = field(default=None, repr=False)
    eos_api_endpoints: Tuple[str, ...] = ()
    referral: str = "coinrace.com"
    kraken_api_key: Optional[str] = None
    kraken_private_key: Optional[str] = field(default=None, repr=False)
    huobi_access_key: Optional[str] = None
    huobi_secret_key: Optional[str] = field(default=None, repr=False)
    huobi_account_id: Optional[int] = None
    bitstamp_api_key: Optional[str] = None
    bitstamp_api_secret: Optional[str] = field(default=None, repr=False)
    bitstamp_user_id: Optional[int] = None
    mxc_access_key: Optional[str] = None
    mxc_secret_key: Optional[str] = field(default=None, repr=False)
    whaleex_api_key: Optional[str] = None
    coinbase_api_key: Optional[str] = None
    coinbase_private_key: Optional[str] = field(default=None, repr=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SigningContext":
        """
        Build a context from a plain dict.

        Raises:
            ConfigurationError: If unknown fields are present
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown credential fields: {', '.join(unknown)}")

        values = dict(data)
        if "eos_api_endpoints" in values:
            values["eos_api_endpoints"] = tuple(values["eos_api_endpoints"] or ())
        # Unescape newlines in the PEM key if needed
        if values.get("coinbase_private_key"):
            values["coinbase_private_key"] = values["coinbase_private_key"].replace("\\n", "\n")
        return cls(**values)

    @classmethod
    def from_env(cls, env_var: str = "TRADING_CREDENTIALS") -> "SigningContext":
        """
        Load the context from an environment variable containing JSON.

        Expected JSON format:
        {
            "eos_account": "myaccount123",
            "eos_private_key": "5K...",
            "kraken_api_key": "...",
            "kraken_private_key": "..."
        }

        Args:
            env_var: Environment variable name containing JSON credentials

        Returns:
            SigningContext instance

        Raises:
            ConfigurationError: If the variable is missing or not a JSON object
        """
        creds_json = os.getenv(env_var)
        if not creds_json:
            raise ConfigurationError(f"Environment variable '{env_var}' is not set")

        try:
            creds_data = json.loads(creds_json)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in '{env_var}': {e}")
        if not isinstance(creds_data, dict):
            raise ConfigurationError(f"Credentials in '{env_var}' must be a JSON object")

        context = cls.from_dict(creds_data)
        logging.info(f"Loaded signing context from {env_var}: {context.configured()}")
        return context

    def configured(self) -> Tuple[str, ...]:
        """Names of the non-empty fields."""
        return tuple(f.name for f in fields(self) if getattr(self, f.name) not in (None, "", ()))

    def require(self, *names: str) -> None:
        """
        Ensure the given fields are set.

        Raises:
            ConfigurationError: Naming every missing field
        """
        missing = [name for name in names if getattr(self, name) in (None, "")]
        if missing:
            raise ConfigurationError(f"Missing required credential fields: {', '.join(missing)}")

    def eos_key(self) -> EosPrivateKey:
        """
        Parse the EOS private key.

        Raises:
            ConfigurationError: If the account or key is missing or the key is invalid
        """
        self.require("eos_account", "eos_private_key")
        return EosPrivateKey.from_string(self.eos_private_key)  # type: ignore[arg-type]
