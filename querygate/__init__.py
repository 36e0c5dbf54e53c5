"""
querygate Package
Security-gated natural language to SQL gateway
"""
from .config import ConfigurationManager, GatewayConfig
from .utils import substitute_env_vars
from .context import ContextStore
from .processor import RequestProcessor, TurnState
from .gateway_handler import GatewayHandler
from .jsonrpc_handler import JSONRPCHandler

__all__ = [
    'ConfigurationManager',
    'GatewayConfig',
    'substitute_env_vars',
    'ContextStore',
    'RequestProcessor',
    'TurnState',
    'GatewayHandler',
    'JSONRPCHandler'
]
