from flask import Flask, request, g, current_app
from flask_cors import CORS
from flask_restful import Api, Resource
from functools import wraps
import jwt
import time
import logging
from typing import Dict, Any, List

from flash_lending.constants import MAX_AMOUNT
from flash_lending.engine import SmartContractEngine
from flash_lending.financial import AssetNotAllowed

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

TOKEN_ALGORITHM = 'HS256'
TOKEN_LIFETIME = 3600  # seconds

def issue_token(secret_key: str, account: str, lifetime: int = TOKEN_LIFETIME) -> str:
    """Bearer token whose subject is the account that will sign pool calls"""
    now = int(time.time())
    payload = {
        'sub': account,
        'iat': now,
        'exp': now + lifetime
    }
    return jwt.encode(payload, secret_key, algorithm=TOKEN_ALGORITHM)

def require_auth(f):
    """Decorator to require a bearer token for API endpoints"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = request.headers.get('Authorization')
        if not token:
            return {'error': 'No authorization token provided'}, 401

        try:
            # Remove 'Bearer ' prefix if present
            if token.startswith('Bearer '):
                token = token[7:]

            payload = jwt.decode(token, current_app.config['SECRET_KEY'], algorithms=[TOKEN_ALGORITHM])

        except jwt.ExpiredSignatureError:
            return {'error': 'Token has expired'}, 401
        except jwt.InvalidTokenError:
            return {'error': 'Invalid token'}, 401

        account = payload.get('sub')
        if not account:
            return {'error': 'Token has no subject'}, 401
        g.current_account = account

        return f(*args, **kwargs)
    return decorated_function

def parse_amount(value) -> int:
    """Integer base units from JSON; strings allowed for values beyond float range"""
    if isinstance(value, bool) or value is None:
        raise ValueError("Amount must be an integer")
    if isinstance(value, float):
        raise ValueError("Amount must be an integer, not a float")
    return int(str(value))

class LendingAPI:
    """Audit and operations API over a deployed lending pool"""

    def __init__(self, engine: SmartContractEngine, pool_address: str,
                 secret_key: str, cors_origins='*'):
        self.app = Flask(__name__)
        self.app.config['SECRET_KEY'] = secret_key

        CORS(self.app, origins=cors_origins)

        self.api = Api(self.app)

        self.engine = engine
        self.pool_address = pool_address

        self._register_routes()

    @property
    def pool(self):
        return self.engine.get_contract(self.pool_address)

    def _register_routes(self):
        """Register all API routes"""
        kwargs = {'api': self}

        self.api.add_resource(HealthResource, '/api/health', resource_class_kwargs=kwargs)
        self.api.add_resource(PoolStatsResource, '/api/pool/stats', resource_class_kwargs=kwargs)
        self.api.add_resource(AssetResource, '/api/pool/assets/<asset>', resource_class_kwargs=kwargs)
        self.api.add_resource(AccountResource, '/api/pool/assets/<asset>/accounts/<account>',
                              resource_class_kwargs=kwargs)
        self.api.add_resource(EventsResource, '/api/events', resource_class_kwargs=kwargs)
        self.api.add_resource(DepositResource, '/api/pool/deposit', resource_class_kwargs=kwargs)
        self.api.add_resource(RedeemResource, '/api/pool/redeem', resource_class_kwargs=kwargs)

    def read(self, function_name: str, *args) -> Any:
        """Run a pool view between execution units"""
        with self.engine.lock:
            return getattr(self.pool, function_name)(*args)

    def transact(self, function_name: str, args: List[Any], caller: str):
        """Submit a pool call as one execution unit and shape the reply"""
        receipt = self.engine.call_contract(self.pool_address, function_name, args, caller)
        if not receipt.success:
            return {'error': receipt.error, 'error_type': receipt.error_type}, 400
        return {
            'success': True,
            'transaction_hash': receipt.transaction_hash,
            'result': receipt.return_data,
            'gas_used': receipt.gas_used,
            'events': receipt.logs
        }

    def events(self, event_name: str = None, asset: str = None) -> List[Dict]:
        with self.engine.lock:
            events = self.engine.get_events(event_name, self.pool_address)
        if asset:
            events = [event for event in events if event['data'].get('asset') == asset]
        return events

    def run(self, host='0.0.0.0', port=5000, debug=False):
        """Run the Flask application"""
        logger.info(f"Starting audit API on {host}:{port}")
        self.app.run(host=host, port=port, debug=debug)

class HealthResource(Resource):
    def __init__(self, api):
        self.api = api

    def get(self):
        stats = self.api.engine.get_engine_stats()
        return {
            'status': 'ok',
            'pool': self.api.pool_address,
            'block_number': stats['block_number'],
            'total_transactions': stats['total_transactions']
        }

class PoolStatsResource(Resource):
    """Every ledger's supply, rate, custody and solvency"""

    def __init__(self, api):
        self.api = api

    def get(self):
        return self.api.read('get_pool_stats')

class AssetResource(Resource):
    def __init__(self, api):
        self.api = api

    def get(self, asset):
        try:
            return self.api.read('get_ledger_info', asset)
        except AssetNotAllowed as e:
            return {'error': str(e), 'error_type': type(e).__name__}, 404

class AccountResource(Resource):
    def __init__(self, api):
        self.api = api

    def get(self, asset, account):
        try:
            return {
                'asset': asset,
                'account': account,
                'shares': self.api.read('share_balance', asset, account),
                'redeemable': self.api.read('preview_redeem', asset, account),
                'exchange_rate': self.api.read('exchange_rate', asset)
            }
        except AssetNotAllowed as e:
            return {'error': str(e), 'error_type': type(e).__name__}, 404

class EventsResource(Resource):
    def __init__(self, api):
        self.api = api

    def get(self):
        events = self.api.events(request.args.get('event'), request.args.get('asset'))
        return {'events': events, 'count': len(events)}

class DepositResource(Resource):
    """Deposit underlying for the authenticated account"""

    def __init__(self, api):
        self.api = api

    @require_auth
    def post(self):
        data = request.get_json(silent=True) or {}
        if 'asset' not in data or 'amount' not in data:
            return {'error': 'asset and amount are required'}, 400

        try:
            amount = parse_amount(data['amount'])
        except ValueError as e:
            return {'error': str(e)}, 400

        return self.api.transact('deposit', [data['asset'], amount], g.current_account)

class RedeemResource(Resource):
    """Redeem shares for the authenticated account; omit shares to redeem everything"""

    def __init__(self, api):
        self.api = api

    @require_auth
    def post(self):
        data = request.get_json(silent=True) or {}
        if 'asset' not in data:
            return {'error': 'asset is required'}, 400

        try:
            if data.get('shares') is None:
                shares = MAX_AMOUNT
            else:
                shares = parse_amount(data['shares'])
        except ValueError as e:
            return {'error': str(e)}, 400

        return self.api.transact('redeem', [data['asset'], shares], g.current_account)

# Main application factory
def create_app(engine: SmartContractEngine, pool_address: str,
               secret_key: str, cors_origins='*') -> Flask:
    """Create and configure the Flask application"""
    return LendingAPI(engine, pool_address, secret_key, cors_origins).app
