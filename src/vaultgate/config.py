"""VaultGate configuration."""

from typing import List

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class VaultGateSettings(BaseSettings):
    """Configuration loaded from VAULTGATE_* environment variables / .env."""

    model_config = ConfigDict(
        env_prefix="VAULTGATE_",
        env_file=".env",
        extra="ignore",
    )

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"
    cors_origins: List[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]

    # Audit ledger; ":memory:" keeps it for the life of the process
    ledger_path: str = ":memory:"

    # Governance
    enforce_change_approvers: bool = False
    validate_identities: bool = True

    # Demo workspace
    seed_demo_data: bool = True


settings = VaultGateSettings()
