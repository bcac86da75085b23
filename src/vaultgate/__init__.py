"""VaultGate - policy-governed transfer authorization for custodial wallets."""

__version__ = "0.3.0"
