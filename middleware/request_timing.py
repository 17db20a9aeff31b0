import time
from flask import request, g
import logging


logger = logging.getLogger('performance')


def setup_request_timing(app):
    """
    Middleware para medir tiempo de requests y detectar requests lentos

    Agrega:
    - Log de requests lentos (> SLOW_REQUEST_SECONDS, por defecto 1 segundo)
    - Header X-Response-Time en todas las respuestas
    """
    threshold = float(app.config.get('SLOW_REQUEST_SECONDS') or 1.0)

    @app.before_request
    def start_request_timer():
        g.start_time = time.perf_counter()

    def _org_label():
        ctx = g.get('org_ctx')
        return ctx.organization_id if ctx is not None and ctx.organization_id else '-'

    @app.after_request
    def add_response_time(response):
        if hasattr(g, 'start_time'):
            elapsed = time.perf_counter() - g.start_time

            if elapsed > threshold * 5:
                logger.error(
                    f'Very slow request: {request.method} {request.path} - '
                    f'{elapsed:.2f}s - Status: {response.status_code} - Org: {_org_label()}'
                )
            elif elapsed > threshold:
                logger.warning(
                    f'Slow request: {request.method} {request.path} - '
                    f'{elapsed:.2f}s - Status: {response.status_code} - Org: {_org_label()}'
                )

            response.headers['X-Response-Time'] = f'{elapsed:.3f}s'

        return response

    @app.teardown_request
    def log_request_failure(exception=None):
        if exception:
            elapsed = time.perf_counter() - g.start_time if hasattr(g, 'start_time') else 0
            logger.error(
                f'Request failed: {request.method} {request.path} - '
                f'{elapsed:.2f}s - Exception: {exception}'
            )

    app.logger.info('Request timing middleware configurado correctamente')
