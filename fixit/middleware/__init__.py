"""Middleware package"""
from .request_id import RequestIdMiddleware, RequestIdLogFilter

__all__ = [
    'RequestIdMiddleware',
    'RequestIdLogFilter',
]
