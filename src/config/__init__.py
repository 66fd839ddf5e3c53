"""
SC Kill Feed - Configuration profiles

    from config import config
    engine_config = config.engine_config()

    from config import Config
    live = Config(profile='live')
"""

from config.config import Config, build_engine_config, config

__all__ = ['Config', 'build_engine_config', 'config']
