# config.py
import os

from sleep_titration.models.base import get_database_uri


class Config:
    SQLALCHEMY_DATABASE_URI = None


class DevelopmentConfig(Config):
    DEBUG = True
    # Database configuration - uses unified source of truth
    SQLALCHEMY_DATABASE_URI = get_database_uri()


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = get_database_uri()


class ProductionConfig(Config):
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = get_database_uri()


config_by_name = {
    'development': DevelopmentConfig,
    'test': TestConfig,
    'production': ProductionConfig,
}


def get_config(name=None):
    """Resolve a config class from a name or the SLEEP_TITRATION_ENV variable."""
    name = name or os.environ.get('SLEEP_TITRATION_ENV', 'development')
    try:
        return config_by_name[name]
    except KeyError:
        raise ValueError(f"Unknown config name: {name!r}. Expected one of {sorted(config_by_name)}")
