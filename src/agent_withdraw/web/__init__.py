"""Web layer for non-custodial agent account withdrawals.

SECURITY PRINCIPLES:
1. The backend never holds or requests private keys.
2. Operations are returned unsigned; only owner-signed operations are relayed.
3. Balances are read from the external indexer for every request.
"""

__all__ = [
    "contracts",
    "services",
    "controllers",
]
