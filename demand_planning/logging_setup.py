import logging
import logging.handlers
import uuid
from datetime import datetime
from pathlib import Path

from demand_planning.config import config

class PlanningRunAdapter(logging.LoggerAdapter):
    """Prefix every message with the run ID and the tenant/facility being planned."""

    def process(self, msg, kwargs):
        scope = '/'.join(str(self.extra[key]) for key in ('tenant_id', 'facility_id') if self.extra.get(key))
        prefix = f"[{self.extra['run_id']} {scope}]" if scope else f"[{self.extra['run_id']}]"
        return f"{prefix} {msg}", kwargs


class LogManager:
    """Logging manager for the Demand Planning Engine.

    Named loggers get a console handler and, when enabled, a rotating file
    under the configured log directory. They do not propagate to the root
    logger.
    """

    _instance = None
    _loggers = {}

    def __new__(cls):
        """Singleton pattern implementation."""
        if cls._instance is None:
            cls._instance = super(LogManager, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._log_config = config.log_config
        self._log_dir = Path(self._log_config['directory'])
        self._formatter = logging.Formatter(self._log_config['format'])

        if self._log_config['file_output']:
            self._log_dir.mkdir(parents=True, exist_ok=True)

        root_logger = logging.getLogger()
        root_logger.setLevel(self.level)
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
        if self._log_config['console_output']:
            root_logger.addHandler(self._console_handler())

        # Loggers shared across modules
        for name in ('app', 'batch'):
            self.get_logger(name)

        self._initialized = True

    @property
    def level(self):
        return getattr(logging, self._log_config['level'].upper(), logging.INFO)

    def _console_handler(self):
        handler = logging.StreamHandler()
        handler.setFormatter(self._formatter)
        return handler

    def _file_handler(self, name):
        handler = logging.handlers.RotatingFileHandler(
            self._log_dir / f"{name}.log",
            maxBytes=self._log_config['max_size_mb'] * 1024 * 1024,
            backupCount=self._log_config['backup_count']
        )
        handler.setFormatter(self._formatter)
        return handler

    def get_logger(self, name):
        """Get a configured logger, creating its handlers on first use."""
        if name in self._loggers:
            return self._loggers[name]

        named_logger = logging.getLogger(name)
        named_logger.setLevel(self.level)
        for handler in named_logger.handlers[:]:
            named_logger.removeHandler(handler)

        if self._log_config['file_output']:
            named_logger.addHandler(self._file_handler(name))
        if self._log_config['console_output']:
            named_logger.addHandler(self._console_handler())

        named_logger.propagate = False

        self._loggers[name] = named_logger
        return named_logger

    def batch_start_log(self, process_name, tenant_id=None, facility_id=None, additional_info=None):
        """Log the start of a batch process and open a run context for it.

        Args:
            process_name: Name of the batch process
            tenant_id: Tenant being planned
            facility_id: Facility being planned
            additional_info: Optional parameters to log with the start line

        Returns:
            Dictionary with the process name, a short run ID, the start time
            and a logger that tags messages with the run
        """
        run_id = uuid.uuid4().hex[:8]
        run_logger = PlanningRunAdapter(self.get_logger('batch'), {
            'run_id': run_id,
            'tenant_id': tenant_id,
            'facility_id': facility_id
        })

        run_logger.info(f"Starting batch process: {process_name}")
        if additional_info:
            run_logger.info(f"Process info: {additional_info}")

        return {
            'process_name': process_name,
            'run_id': run_id,
            'start_time': datetime.now(),
            'logger': run_logger
        }

    def batch_end_log(self, log_info, success=True, result_info=None):
        """Log the outcome of a batch process, naming each failed step.

        Args:
            log_info: Dictionary returned by batch_start_log
            success: Whether the batch process succeeded
            result_info: Step results keyed by step name
        """
        run_logger = log_info['logger']
        process_name = log_info['process_name']
        duration = datetime.now() - log_info['start_time']

        if success:
            run_logger.info(f"Completed batch process: {process_name} in {duration}")
            return

        run_logger.error(f"Failed batch process: {process_name} after {duration}")
        for step_name, step in (result_info or {}).items():
            if not step.get('success', False):
                error = step.get('error')
                run_logger.error(f"Step {step_name} failed" + (f": {error}" if error else ""))

# Global log manager instance
log_manager = LogManager()

def get_logger(name):
    """Get a logger with the specified name."""
    return log_manager.get_logger(name)

def log_exception(target_logger, exception, message):
    """Log an error line with the exception's traceback attached.

    Works with plain loggers and with a PlanningRunAdapter.
    """
    target_logger.error(f"{message}: {exception}", exc_info=exception)
