import json
import os
from dataclasses import dataclass
from typing import Mapping, Optional

import base58
from dotenv import load_dotenv
from solders.keypair import Keypair

from src.settlement.errors import ConfigurationError

# Load Environment Variables from project root .env
env_path = os.path.join(os.path.dirname(__file__), "../.env")

DEFAULT_JUPITER_API = "https://quote-api.jup.ag/v6"
DEFAULT_LOG_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "../logs"))


@dataclass(frozen=True)
class Settings:
    """
    Solver runtime configuration.

    Built once at startup and passed into the orchestrator. Nothing in
    src/settlement reads the environment directly.
    """

    keypair: Keypair
    rpc_url: str
    jupiter_api_url: str = DEFAULT_JUPITER_API

    # Router
    slippage_bps: int = 100
    only_direct_routes: bool = False
    http_timeout_sec: float = 30.0

    # Settlement transaction budget
    compute_unit_limit: int = 1_000_000
    heap_frame_bytes: int = 128 * 1024

    # Reconciliation
    balance_retry_delay_sec: float = 5.0

    # Logging
    log_dir: str = DEFAULT_LOG_DIR
    silent_mode: bool = False

    @property
    def solver_pubkey(self) -> str:
        return str(self.keypair.pubkey())

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, load_dotenv_file: bool = True) -> "Settings":
        """
        Build settings from the process environment (or a given mapping).

        Raises:
            ConfigurationError: keypair or RPC endpoint missing/invalid.
        """
        if environ is None:
            if load_dotenv_file:
                load_dotenv(env_path)
            environ = os.environ

        secret = environ.get("SOLANA_KEYPAIR", "").strip()
        if not secret:
            raise ConfigurationError("SOLANA_KEYPAIR must be set")
        keypair = _load_keypair(secret)

        rpc_url = environ.get("SOLANA_RPC", "").strip()
        if not rpc_url:
            raise ConfigurationError("SOLANA_RPC must be set")

        return cls(
            keypair=keypair,
            rpc_url=rpc_url,
            jupiter_api_url=environ.get("JUPITER_API_URL", DEFAULT_JUPITER_API).rstrip("/"),
            slippage_bps=_int(environ, "SLIPPAGE_BPS", 100),
            only_direct_routes=environ.get("ONLY_DIRECT_ROUTES", "false").lower() in ("1", "true", "yes"),
            http_timeout_sec=_float(environ, "HTTP_TIMEOUT_SEC", 30.0),
            compute_unit_limit=_int(environ, "COMPUTE_UNIT_LIMIT", 1_000_000),
            heap_frame_bytes=_int(environ, "HEAP_FRAME_BYTES", 128 * 1024),
            balance_retry_delay_sec=_float(environ, "BALANCE_RETRY_DELAY_SEC", 5.0),
            log_dir=environ.get("LOG_DIR", DEFAULT_LOG_DIR),
            silent_mode=environ.get("SILENT_MODE", "false").lower() in ("1", "true", "yes"),
        )


def _load_keypair(secret: str) -> Keypair:
    try:
        if secret.startswith("["):
            return Keypair.from_bytes(bytes(json.loads(secret)))
        return Keypair.from_bytes(base58.b58decode(secret))
    except Exception as e:
        raise ConfigurationError(f"Invalid SOLANA_KEYPAIR format: {e}") from e


def _int(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = environ.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}") from e


def _float(environ: Mapping[str, str], key: str, default: float) -> float:
    raw = environ.get(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}") from e
