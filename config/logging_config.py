import logging
import os
from logging.handlers import RotatingFileHandler


LOG_FORMAT = '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'


def _rotating(path, level, backup_count, formatter):
    handler = RotatingFileHandler(path, maxBytes=10485760, backupCount=backup_count)  # 10MB
    handler.setFormatter(formatter)
    handler.setLevel(level)
    return handler


def setup_logging(app):
    """Configura logging estructurado para la aplicacion"""

    level = getattr(logging, str(app.config.get('LOG_LEVEL') or 'INFO').upper(), logging.INFO)
    app.logger.setLevel(level)

    security_logger = logging.getLogger('security')
    security_logger.setLevel(logging.INFO)
    security_logger.propagate = False  # No propagar a root logger

    performance_logger = logging.getLogger('performance')
    performance_logger.setLevel(logging.WARNING)  # Solo slow requests
    performance_logger.propagate = False

    log_dir = app.config.get('LOG_DIR')
    if not log_dir:
        # En tests sin LOG_DIR no se escriben archivos
        if app.config.get('TESTING'):
            return
        log_dir = os.path.join(app.root_path, 'logs')

    os.makedirs(log_dir, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT)

    # Evitar handlers duplicados cuando se crean varias apps en el mismo proceso
    for logger in (app.logger, security_logger, performance_logger):
        for handler in list(logger.handlers):
            if isinstance(handler, RotatingFileHandler):
                logger.removeHandler(handler)
                handler.close()

    # Archivo general de aplicacion y errores criticos
    app.logger.addHandler(_rotating(os.path.join(log_dir, 'app.log'), logging.INFO, 10, formatter))
    app.logger.addHandler(_rotating(os.path.join(log_dir, 'errors.log'), logging.ERROR, 10, formatter))

    # Seguridad y auditoria: mas retention
    security_logger.addHandler(_rotating(os.path.join(log_dir, 'security.log'), logging.INFO, 20, formatter))

    performance_logger.addHandler(_rotating(os.path.join(log_dir, 'performance.log'), logging.WARNING, 5, formatter))

    app.logger.info('Sistema de logging configurado correctamente')
    app.logger.info(f'Logs guardados en: {log_dir}')
