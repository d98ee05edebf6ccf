import logging
import traceback
from typing import Optional, Union

DEFAULT_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'

# botocore logs every request at DEBUG; keep it quiet unless asked for
_NOISY_LOGGERS = ("boto3", "botocore", "urllib3")


def _coerce_level(level: Union[int, str]) -> int:
	if isinstance(level, int):
		return level
	value = logging.getLevelName(str(level).upper())
	if not isinstance(value, int):
		raise ValueError(f"Unknown log level: {level}")
	return value


def setup_logging(level: Union[int, str] = logging.INFO, fmt: Optional[str] = None) -> None:
	"""Configure root logging once. Subsequent calls only adjust the levels.
	If fmt is not provided, DEFAULT_FORMAT is used.
	"""
	numeric_level = _coerce_level(level)
	root = logging.getLogger()
	if root.handlers:
		root.setLevel(numeric_level)
	else:
		logging.basicConfig(level=numeric_level, format=fmt or DEFAULT_FORMAT)
	for name in _NOISY_LOGGERS:
		logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: Optional[str] = None) -> logging.Logger:
	"""Return a module/logger by name, after ensuring logging is configured."""
	if not logging.getLogger().handlers:
		setup_logging()
	return logging.getLogger(name) if name else logging.getLogger("ecr_cleanup")


def log_exception(logger: logging.Logger, message: str = "An error occurred", exc_info: Exception = None) -> None:
	"""Log an error together with the traceback of the exception being handled.

	Args:
		logger: Logger instance to use
		message: Custom error message to log before the traceback
		exc_info: Exception instance (if None, uses current exception context)
	"""
	logger.error(message)
	if exc_info is not None:
		logger.error(f"Exception type: {type(exc_info).__name__}")
		logger.error(f"Exception message: {str(exc_info)}")
	logger.debug("Full traceback:\n" + traceback.format_exc())
