import os
import configparser
from pathlib import Path

DEFAULT_CONFIG_PATH = Path('config') / 'settings.ini'


class Config:
    """Configuration manager for the Demand Planning engine."""

    _instance = None

    def __new__(cls):
        """Singleton pattern implementation."""
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        """Initialize the configuration if not already initialized."""
        if self._initialized:
            return

        self._config_path = Path(os.getenv('DEMAND_PLANNING_CONFIG', DEFAULT_CONFIG_PATH))
        self._config = configparser.ConfigParser(interpolation=None)

        # Defaults first, then whatever the settings file overrides
        self._create_default_config()
        if self._config_path.exists():
            self._config.read(self._config_path)

        self._initialized = True

    def _create_default_config(self):
        """Populate the default configuration."""
        self._config['DATABASE'] = {
            'url': '',
            'engine': 'postgresql',
            'host': 'localhost',
            'port': '5432',
            'database': 'demand_planning',
            'username': 'postgres',
            'password': 'postgres',
            'pool_size': '10',
            'max_overflow': '20',
            'pool_timeout': '30',
            'pool_recycle': '1800',
            'echo': 'False'
        }

        self._config['LOGGING'] = {
            'level': 'INFO',
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            'directory': 'logs',
            'max_size_mb': '10',
            'backup_count': '5',
            'console_output': 'True',
            'file_output': 'True'
        }

        self._config['ANALYTICS'] = {
            'url': 'https://metabase.example.com',
            'api_key': '',
            'demand_card_id': '19170',
            'country_share_card_id': '9434',
            'timeout_seconds': '30',
            'demand_cache_minutes': '5',
            'country_share_cache_minutes': '30'
        }

        self._config['STOCK_SHEET'] = {
            'sheet_id': '',
            'gid': '0',
            'export_url': 'https://docs.google.com/spreadsheets/d/{sheet_id}/export?format=csv&gid={gid}',
            'header_row': '2',
            'bulk_total_marker': 'wh total',
            'fulfillment_total_marker': 'fba - total',
            'timeout_seconds': '30',
            'cache_minutes': '5'
        }

        self._config['WMS'] = {
            'url': 'https://wms.example.com/api/v1',
            'token': '',
            'page_size': '500',
            'timeout_seconds': '30'
        }

        self._config['PLANNING'] = {
            'network_config': '',
            'trailing_window_days': '30',
            'default_target_days': '30',
            'forecast_horizon_months': '12',
            'plan_forecast_months': '3',
            'max_workers': '4'
        }

    def get(self, section, key, default=None):
        """Get configuration value."""
        try:
            return self._config.get(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError):
            return default

    def get_int(self, section, key, default=None):
        """Get configuration value as integer."""
        try:
            return self._config.getint(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return default

    def get_float(self, section, key, default=None):
        """Get configuration value as float."""
        try:
            return self._config.getfloat(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return default

    def get_boolean(self, section, key, default=None):
        """Get configuration value as boolean."""
        try:
            return self._config.getboolean(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return default

    def get_db_url(self):
        """Generate SQLAlchemy database URL."""
        url = os.getenv('DATABASE_URL') or self.get('DATABASE', 'url', '')
        if url:
            return url

        engine = self.get('DATABASE', 'engine', 'postgresql')
        username = self.get('DATABASE', 'username', 'postgres')
        password = self.get('DATABASE', 'password', 'postgres')
        host = self.get('DATABASE', 'host', 'localhost')
        port = self.get('DATABASE', 'port', '5432')
        database = self.get('DATABASE', 'database', 'demand_planning')

        return f"{engine}://{username}:{password}@{host}:{port}/{database}"

    @property
    def log_config(self):
        """Get logging configuration."""
        return {
            'level': self.get('LOGGING', 'level', 'INFO'),
            'format': self.get('LOGGING', 'format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s'),
            'directory': self.get('LOGGING', 'directory', 'logs'),
            'max_size_mb': self.get_int('LOGGING', 'max_size_mb', 10),
            'backup_count': self.get_int('LOGGING', 'backup_count', 5),
            'console_output': self.get_boolean('LOGGING', 'console_output', True),
            'file_output': self.get_boolean('LOGGING', 'file_output', True)
        }

    @property
    def db_config(self):
        """Get connection pool configuration."""
        return {
            'pool_size': self.get_int('DATABASE', 'pool_size', 10),
            'max_overflow': self.get_int('DATABASE', 'max_overflow', 20),
            'pool_timeout': self.get_int('DATABASE', 'pool_timeout', 30),
            'pool_recycle': self.get_int('DATABASE', 'pool_recycle', 1800),
            'echo': self.get_boolean('DATABASE', 'echo', False)
        }

    @property
    def analytics_config(self):
        """Get analytics (historical demand) source configuration."""
        return {
            'url': self.get('ANALYTICS', 'url', '').rstrip('/'),
            'api_key': os.getenv('ANALYTICS_API_KEY') or self.get('ANALYTICS', 'api_key', ''),
            'demand_card_id': self.get_int('ANALYTICS', 'demand_card_id', 19170),
            'country_share_card_id': self.get_int('ANALYTICS', 'country_share_card_id', 9434),
            'timeout_seconds': self.get_float('ANALYTICS', 'timeout_seconds', 30.0),
            'demand_cache_minutes': self.get_float('ANALYTICS', 'demand_cache_minutes', 5.0),
            'country_share_cache_minutes': self.get_float('ANALYTICS', 'country_share_cache_minutes', 30.0)
        }

    @property
    def stock_sheet_config(self):
        """Get location stock sheet configuration."""
        sheet_id = os.getenv('STOCK_SHEET_ID') or self.get('STOCK_SHEET', 'sheet_id', '')
        gid = self.get('STOCK_SHEET', 'gid', '0')
        template = self.get('STOCK_SHEET', 'export_url', '')
        return {
            'url': template.format(sheet_id=sheet_id, gid=gid),
            'header_row': self.get_int('STOCK_SHEET', 'header_row', 2),
            'bulk_total_marker': self.get('STOCK_SHEET', 'bulk_total_marker', 'wh total'),
            'fulfillment_total_marker': self.get('STOCK_SHEET', 'fulfillment_total_marker', 'fba - total'),
            'timeout_seconds': self.get_float('STOCK_SHEET', 'timeout_seconds', 30.0),
            'cache_minutes': self.get_float('STOCK_SHEET', 'cache_minutes', 5.0)
        }

    @property
    def wms_config(self):
        """Get warehouse management system configuration."""
        return {
            'url': self.get('WMS', 'url', '').rstrip('/'),
            'token': (os.getenv('WMS_API_TOKEN') or self.get('WMS', 'token', '')).strip(),
            'page_size': self.get_int('WMS', 'page_size', 500),
            'timeout_seconds': self.get_float('WMS', 'timeout_seconds', 30.0)
        }

    @property
    def planning_config(self):
        """Get planning engine configuration."""
        return {
            'network_config': self.get('PLANNING', 'network_config', '') or None,
            'trailing_window_days': self.get_int('PLANNING', 'trailing_window_days', 30),
            'default_target_days': self.get_int('PLANNING', 'default_target_days', 30),
            'forecast_horizon_months': self.get_int('PLANNING', 'forecast_horizon_months', 12),
            'plan_forecast_months': self.get_int('PLANNING', 'plan_forecast_months', 3),
            'max_workers': self.get_int('PLANNING', 'max_workers', 4)
        }

# Global config instance
config = Config()
