"""Conversation context storage"""
from .backends import ContextBackend, InMemoryContextBackend, RedisContextBackend
from .models import ConversationContext
from .store import MAX_QUERY_HISTORY, ContextStore

__all__ = [
    'ContextBackend',
    'InMemoryContextBackend',
    'RedisContextBackend',
    'ConversationContext',
    'ContextStore',
    'MAX_QUERY_HISTORY'
]
