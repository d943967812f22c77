import os
import configparser
from pathlib import Path

class Config:
    """Configuration manager for the Demand Planning Engine."""

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

        self._config_dir = Path(os.getenv('DEMAND_PLANNING_CONFIG_DIR', 'config'))
        self._config_path = self._config_dir / 'settings.ini'
        self._config = configparser.ConfigParser(interpolation=None)

        # Defaults first, file values override them
        self._load_defaults()
        if self._config_path.exists():
            self._config.read(self._config_path)

        self._initialized = True

    def _load_defaults(self):
        """Populate the default configuration in memory."""
        self._config['DATABASE'] = {
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

        self._config['FORECASTING'] = {
            'history_days': '90',
            'min_history_days': '7',
            'default_horizon_days': '30',
            'moving_average_window': '30',
            'smoothing_alpha': '0.3',
            'holt_winters_alpha': '0.2',
            'holt_winters_beta': '0.1',
            'holt_winters_gamma': '0.1',
            'holt_winters_min_history': '60',
            'seasonality_threshold': '0.3',
            'variability_threshold': '0.3'
        }

        self._config['ACCURACY'] = {
            'default_target_mape': '25.0',
            'best_method_window_days': '30',
            'comparison_window_days': '90'
        }

        self._config['SAFETY_STOCK'] = {
            'default_service_level': '0.95',
            'demand_window_days': '90',
            'lead_time_window_days': '180',
            'default_lead_time_days': '14',
            'default_lead_time_std_dev': '3',
            'default_safety_stock_days': '7',
            'default_unit_cost': '100.0',
            'ordering_cost': '50.0',
            'holding_cost_pct': '0.25'
        }

        self._config['REPLENISHMENT'] = {
            'forecast_window_days': '90',
            'order_buffer_days': '2',
            'service_level': '0.95'
        }

        self._config['BATCH_PROCESS'] = {
            'backfill_days': '1',
            'accuracy_period_days': '30'
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
        url = self.get('DATABASE', 'url')
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
    def forecast_config(self):
        """Get forecasting configuration."""
        return {
            'history_days': self.get_int('FORECASTING', 'history_days', 90),
            'min_history_days': self.get_int('FORECASTING', 'min_history_days', 7),
            'default_horizon_days': self.get_int('FORECASTING', 'default_horizon_days', 30),
            'moving_average_window': self.get_int('FORECASTING', 'moving_average_window', 30),
            'smoothing_alpha': self.get_float('FORECASTING', 'smoothing_alpha', 0.3),
            'holt_winters_alpha': self.get_float('FORECASTING', 'holt_winters_alpha', 0.2),
            'holt_winters_beta': self.get_float('FORECASTING', 'holt_winters_beta', 0.1),
            'holt_winters_gamma': self.get_float('FORECASTING', 'holt_winters_gamma', 0.1),
            'holt_winters_min_history': self.get_int('FORECASTING', 'holt_winters_min_history', 60),
            'seasonality_threshold': self.get_float('FORECASTING', 'seasonality_threshold', 0.3),
            'variability_threshold': self.get_float('FORECASTING', 'variability_threshold', 0.3)
        }

    @property
    def accuracy_config(self):
        """Get forecast accuracy configuration."""
        return {
            'default_target_mape': self.get_float('ACCURACY', 'default_target_mape', 25.0),
            'best_method_window_days': self.get_int('ACCURACY', 'best_method_window_days', 30),
            'comparison_window_days': self.get_int('ACCURACY', 'comparison_window_days', 90)
        }

    @property
    def safety_stock_config(self):
        """Get safety stock configuration."""
        return {
            'default_service_level': self.get_float('SAFETY_STOCK', 'default_service_level', 0.95),
            'demand_window_days': self.get_int('SAFETY_STOCK', 'demand_window_days', 90),
            'lead_time_window_days': self.get_int('SAFETY_STOCK', 'lead_time_window_days', 180),
            'default_lead_time_days': self.get_float('SAFETY_STOCK', 'default_lead_time_days', 14.0),
            'default_lead_time_std_dev': self.get_float('SAFETY_STOCK', 'default_lead_time_std_dev', 3.0),
            'default_safety_stock_days': self.get_float('SAFETY_STOCK', 'default_safety_stock_days', 7.0),
            'default_unit_cost': self.get_float('SAFETY_STOCK', 'default_unit_cost', 100.0),
            'ordering_cost': self.get_float('SAFETY_STOCK', 'ordering_cost', 50.0),
            'holding_cost_pct': self.get_float('SAFETY_STOCK', 'holding_cost_pct', 0.25)
        }

    @property
    def replenishment_config(self):
        """Get replenishment recommendation configuration."""
        return {
            'forecast_window_days': self.get_int('REPLENISHMENT', 'forecast_window_days', 90),
            'order_buffer_days': self.get_int('REPLENISHMENT', 'order_buffer_days', 2),
            'service_level': self.get_float('REPLENISHMENT', 'service_level', 0.95)
        }

    @property
    def batch_config(self):
        """Get batch processing configuration."""
        return {
            'backfill_days': self.get_int('BATCH_PROCESS', 'backfill_days', 1),
            'accuracy_period_days': self.get_int('BATCH_PROCESS', 'accuracy_period_days', 30)
        }

# Global config instance
config = Config()
