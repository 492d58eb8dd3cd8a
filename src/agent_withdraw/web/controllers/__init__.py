"""HTTP controllers for web API endpoints.

SECURITY: These controllers MUST NOT:
- Access private keys
- Sign user operations

All operations prepare data for off-box signing or relay owner-signed data.
"""

from agent_withdraw.web.controllers.networks import router as networks_router
from agent_withdraw.web.controllers.withdrawals import router as withdrawals_router

__all__ = [
    "networks_router",
    "withdrawals_router",
]
