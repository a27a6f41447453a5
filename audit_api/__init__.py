"""Audit API Module

REST endpoints over a deployed lending pool:

- Health, pool statistics and per-asset ledgers
- Per-account share balances and redeemable amounts
- Emitted events for external auditing
- JWT-authenticated deposit and redeem
"""

from .rest_api import (
    LendingAPI,
    HealthResource,
    PoolStatsResource,
    AssetResource,
    AccountResource,
    EventsResource,
    DepositResource,
    RedeemResource,
    create_app,
    issue_token,
    require_auth
)

__all__ = [
    'LendingAPI',
    'HealthResource',
    'PoolStatsResource',
    'AssetResource',
    'AccountResource',
    'EventsResource',
    'DepositResource',
    'RedeemResource',
    'create_app',
    'issue_token',
    'require_auth',
    'start_api_server'
]

__version__ = '1.0.0'

# API Configuration
DEFAULT_PORT = 5000
DEFAULT_HOST = '0.0.0.0'

def start_api_server(engine, pool_address, secret_key,
                     host=DEFAULT_HOST, port=DEFAULT_PORT, debug=False, cors_origins='*'):
    """Start the audit API server

    Args:
        engine (SmartContractEngine): Engine the pool is deployed on
        pool_address (str): Address of the LendingPool contract
        secret_key (str): HS256 key for bearer tokens
        host (str): Host to bind to
        port (int): Port to listen on
        debug (bool): Enable debug mode
        cors_origins: Allowed CORS origins

    Returns:
        LendingAPI instance
    """
    api = LendingAPI(engine, pool_address, secret_key, cors_origins)
    api.run(host=host, port=port, debug=debug)
    return api
