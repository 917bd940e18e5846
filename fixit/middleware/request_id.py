"""
Request ID middleware for request tracing and logging
"""
import logging
import uuid

from flask import has_request_context, request


class RequestIdMiddleware:
    """
    WSGI middleware that tags every request with an ID.

    An incoming ``X-Request-ID`` (e.g. from the load balancer or the payment
    service calling the confirmation hook) is reused so one booking's trail
    can be followed across services.
    """

    def __init__(self, app):
        self.app = app

    def __call__(self, environ, start_response):
        request_id = environ.get('HTTP_X_REQUEST_ID') or str(uuid.uuid4())
        environ['request_id'] = request_id

        def start_response_with_id(status, headers, exc_info=None):
            headers.append(('X-Request-ID', request_id))
            return start_response(status, headers, exc_info)

        return self.app(environ, start_response_with_id)


class RequestIdLogFilter(logging.Filter):
    """Expose the current request ID as ``%(request_id)s`` on log records."""

    def filter(self, record):
        if has_request_context():
            record.request_id = request.environ.get('request_id', '-')
        else:
            record.request_id = '-'
        return True
