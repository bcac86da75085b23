"""Identity and wallet directory.

The core never holds a hardcoded roster; it asks a Directory to resolve the
display names it sees in policies. StaticDirectory is an in-memory
implementation seeded with the demo workspace.
"""

import logging
from typing import Dict, List, Optional, Protocol

from pydantic import BaseModel, Field

from vaultgate.errors import NotFoundError


logger = logging.getLogger(__name__)


class Identity(BaseModel):
    """A person allowed to initiate or sign."""

    name: str
    address: str = Field(description="Wallet address used to sign in")
    groups: List[str] = Field(default_factory=list)


class Wallet(BaseModel):
    """A wallet known to the workspace (custodial or address book)."""

    name: str
    address: str
    is_internal: bool = Field(default=True)


class Directory(Protocol):
    def resolve_user(self, name: str) -> Identity: ...

    def resolve_wallet(self, name: str) -> Wallet: ...

    def list_users(self) -> List[Identity]: ...

    def list_wallets(self) -> List[Wallet]: ...


class StaticDirectory:
    """Directory backed by fixed lists."""

    def __init__(self, users: List[Identity], wallets: List[Wallet]):
        self._users: Dict[str, Identity] = {u.name: u for u in users}
        self._wallets: Dict[str, Wallet] = {w.name: w for w in wallets}
        logger.info(
            f"Directory loaded: {len(self._users)} users, {len(self._wallets)} wallets"
        )

    def resolve_user(self, name: str) -> Identity:
        user = self._users.get(name)
        if user is None:
            raise NotFoundError(f"User not found: {name}")
        return user

    def resolve_wallet(self, name: str) -> Wallet:
        wallet = self._wallets.get(name)
        if wallet is None:
            # Raw addresses are accepted wherever a wallet name is
            wallet = self._find_by_address(name)
        if wallet is None:
            raise NotFoundError(f"Wallet not found: {name}")
        return wallet

    def user_by_address(self, address: str) -> Optional[Identity]:
        for user in self._users.values():
            if user.address.lower() == address.lower():
                return user
        return None

    def list_users(self) -> List[Identity]:
        return list(self._users.values())

    def list_wallets(self) -> List[Wallet]:
        return list(self._wallets.values())

    def _find_by_address(self, address: str) -> Optional[Wallet]:
        for wallet in self._wallets.values():
            if wallet.address.lower() == address.lower():
                return wallet
        return None


DEMO_USERS = [
    Identity(name="Meir", address="0xc333b115a72a3519b48E9B4f9D1bBD4a34C248b1", groups=["admins"]),
    Identity(name="Ishai", address="0x7a250d5630B4cF539739dF2C5dAcb4c659F2488D", groups=["admins"]),
    Identity(name="Omer", address="0xdAC17F958D2ee523a2206206994597C13D831ec7", groups=["finance"]),
    Identity(name="Lena", address="0x6B175474E89094C44Da98b954EedeAC495271d0F", groups=["finance"]),
    Identity(name="Vitalik", address="0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045", groups=["ops"]),
]

DEMO_WALLETS = [
    Wallet(name="Finances", address="0xb0bF1a2B3c4D5e6F7a8B9c0D1e2F3a4B5c6D7E8F"),
    Wallet(name="Treasury", address="0xcAfE9a8B7c6D5e4F3a2B1c0D9e8F7a6B5c4D3E2F"),
    Wallet(name="Meir", address="0xE1f2A3b4C5d6E7f8A9B0c1D2E3f4A5b6C7d8E9f0"),
    Wallet(name="Ishai", address="0xF0e1D2c3B4a5F6e7D8c9B0a1E2f3D4c5B6a7E8f9"),
    Wallet(
        name="Bank of America",
        address="0xa1cE2f3B4C5d6E7F8A9b0C1D2e3F4a5B6c7D8E9f",
        is_internal=False,
    ),
    Wallet(
        name="Vitalik Buterin",
        address="0xDef01a2B3c4D5e6F7a8B9c0D1e2F3a4B5c6D7E8F",
        is_internal=False,
    ),
]


def demo_directory() -> StaticDirectory:
    """Directory seeded with the demo workspace roster."""
    return StaticDirectory(DEMO_USERS, DEMO_WALLETS)
