"""Custodial wallet provider integration."""

from .manager import PrivySolanaSigner, PrivySuiSigner, WalletInfo, WalletManager
from .privy_client import PrivyClient, WalletProviderError

__all__ = [
    "PrivyClient",
    "PrivySolanaSigner",
    "PrivySuiSigner",
    "WalletInfo",
    "WalletManager",
    "WalletProviderError",
]
