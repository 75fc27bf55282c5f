"""AWS Lambda handler returning a day's Redmine activity events."""
import json
import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from typing import Any, Dict, List

from scraper.errors import ConfigError, EventSourceError
from scraper.redmine_activity import DEFAULT_MAX_PAGES, RedmineActivitySource
from storage.config_store import SourceConfigStore
from storage.dynamodb_cache import DynamoDBPageCache
from storage.page_cache import InMemoryPageCache

MAX_WORKERS = 8

# Attributes every LogRecord has; anything else was passed through `extra`
_RECORD_ATTRIBUTES = set(vars(logging.LogRecord('', 0, '', 0, '', None, None))) | {'message', 'asctime'}

# Survives between invocations of a warm container
_memory_cache = InMemoryPageCache()


class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON, including fields passed as extra."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key, value in vars(record).items():
            if key not in _RECORD_ATTRIBUTES and key not in log_data:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {'statusCode': status_code, 'body': json.dumps(body)}


def _parse_day(value: Any) -> date:
    """
    Read the requested day from the payload.

    Raises:
        ValueError: If the day is not a YYYY-MM-DD string
    """
    if value is None:
        return date.today()
    if not isinstance(value, str):
        raise ValueError(f"Invalid day: {value!r}")
    return datetime.strptime(value, '%Y-%m-%d').date()


def _requested_config_names(event: Dict[str, Any], config_store: SourceConfigStore) -> List[str]:
    """
    Work out which configurations the payload asks for.

    Raises:
        ConfigError: If a requested configuration is unknown or none exist
    """
    if 'config_names' in event:
        names = list(event['config_names'])
    elif 'config_name' in event:
        names = [event['config_name']]
    else:
        names = config_store.names()

    if not names:
        raise ConfigError("No Redmine configurations to query")
    for name in names:
        config_store.get(name)
    return names


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Fetch one day of Redmine activity for each requested configuration.

    Args:
        event: Payload with optional "day" (YYYY-MM-DD) and "config_name"
            or "config_names"
        context: Lambda context object

    Returns:
        Response dict with statusCode and the events of each configuration
    """
    # Read configuration from environment variables
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    timeout_seconds = float(os.environ.get('TIMEOUT_SECONDS', '30'))
    cache_table_name = os.environ.get('CACHE_TABLE_NAME', '')
    max_pages = int(os.environ.get('MAX_PAGES', str(DEFAULT_MAX_PAGES)))

    # Initialize logging
    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()
    event = event or {}

    # Validate the payload before doing any network work
    try:
        day = _parse_day(event.get('day'))
        config_store = SourceConfigStore.from_env()
        config_names = _requested_config_names(event, config_store)
    except (AttributeError, ValueError, TypeError, ConfigError) as e:
        logger.error(f"Invalid request: {e}", extra={'error_type': type(e).__name__})
        return _response(400, {
            'message': 'Invalid request',
            'error': str(e),
            'error_type': type(e).__name__
        })

    logger.info(
        "Lambda execution started",
        extra={
            'day': day.isoformat(),
            'config_names': config_names,
            'cache_table_name': cache_table_name or None,
            'timeout_seconds': timeout_seconds
        }
    )

    try:
        # Pick the page cache: DynamoDB when a table is configured
        if cache_table_name:
            cache = DynamoDBPageCache(table_name=cache_table_name)
        else:
            cache = _memory_cache
        source = RedmineActivitySource(
            cache,
            timeout=(timeout_seconds, timeout_seconds),
            max_pages=max_pages
        )

        # Query each configuration in its own worker thread
        results = {}
        workers = min(MAX_WORKERS, len(config_names))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                name: executor.submit(source.get_events, config_store.get(name), name, day)
                for name in config_names
            }
            for name, future in futures.items():
                try:
                    events = future.result()
                except EventSourceError as e:
                    logger.error(
                        f"Failed to get events for '{name}': {e.message}",
                        extra={'config_name': name, 'error_type': type(e).__name__}
                    )
                    results[name] = {'error': e.message, 'error_type': type(e).__name__}
                except Exception as e:
                    # Any other failure is still reported under its configuration
                    logger.error(
                        f"Unexpected error getting events for '{name}': {str(e)}",
                        extra={'config_name': name, 'error_type': type(e).__name__},
                        exc_info=True
                    )
                    results[name] = {'error': str(e), 'error_type': type(e).__name__}
                else:
                    results[name] = {'events': [item.to_dict() for item in events]}

        duration = time.time() - start_time
        failed = [name for name, result in results.items() if 'error' in result]

        logger.info(
            "Lambda execution completed",
            extra={
                'duration_seconds': round(duration, 2),
                'configs_failed': len(failed),
                'events_found': sum(len(r.get('events', [])) for r in results.values())
            }
        )

        # Nothing usable came back
        if len(failed) == len(results):
            return _response(500, {
                'message': 'Failed to fetch activity events',
                'day': day.isoformat(),
                'results': results,
                'duration_seconds': round(duration, 2)
            })

        return _response(200, {
            'message': 'Activity fetched successfully',
            'day': day.isoformat(),
            'results': results,
            'duration_seconds': round(duration, 2)
        })

    except Exception as e:
        duration = time.time() - start_time

        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )

        return _response(500, {
            'message': 'Request failed',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })
