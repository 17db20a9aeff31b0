"""Configuración de la aplicación: settings desde entorno y logging."""

from config.settings import AppConfig, InvalidDatabaseURL
from config.logging_config import setup_logging

__all__ = ['AppConfig', 'InvalidDatabaseURL', 'setup_logging']
