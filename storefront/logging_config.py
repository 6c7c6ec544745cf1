"""
Logging configuration for New Relic Logs in Context
"""
import logging
import sys
from flask import has_request_context, request

class RequestFormatter(logging.Formatter):
    """Custom formatter that adds request context to logs"""

    def format(self, record):
        if has_request_context():
            record.url = request.url
            record.method = request.method
            record.remote_addr = request.remote_addr
        else:
            record.url = 'N/A'
            record.method = 'N/A'
            record.remote_addr = 'N/A'

        return super().format(record)


def setup_logging(app):
    """
    Setup logging configuration for the Flask app
    New Relic will automatically capture these logs when properly configured
    """
    level = getattr(logging, app.config.get('LOG_LEVEL', 'INFO'), logging.INFO)

    formatter = RequestFormatter(
        '%(asctime)s - %(name)s - %(levelname)s - '
        '[%(method)s %(url)s] - '
        '[IP: %(remote_addr)s] - '
        '%(message)s'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    # app.logger is the 'storefront' logger, so service module loggers
    # (storefront.services.*) propagate into this handler
    app.logger.setLevel(level)
    for handler in list(app.logger.handlers):
        if isinstance(handler.formatter, RequestFormatter):
            app.logger.removeHandler(handler)
    app.logger.addHandler(console_handler)

    # Prevent duplicate logs
    app.logger.propagate = False

    app.logger.info('Application logging configured', extra={
        'event_type': 'app_startup',
        'log_level': app.config.get('LOG_LEVEL', 'INFO')
    })

    return app.logger
