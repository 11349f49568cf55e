# demand_planning/sources/base.py
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Optional

import requests

from demand_planning.config import config
from demand_planning.exceptions import DataUnavailableError, PlanningError
from demand_planning.logging_setup import get_logger

logger = get_logger(__name__)


class HttpSource:
    """Base class for sources read over HTTP.

    Every request carries a timeout. Transport errors, timeouts and non-2xx
    responses are raised as DataUnavailableError.
    """

    source_name = 'source'

    def __init__(self, timeout_seconds: float = 30.0, session: Optional[requests.Session] = None):
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        kwargs.setdefault('timeout', self.timeout_seconds)

        try:
            response = self.session.request(method, url, **kwargs)
        except requests.Timeout as e:
            raise DataUnavailableError(
                f"{self.source_name} timed out after {self.timeout_seconds}s",
                code='TIMEOUT',
                details={'url': url, 'error': str(e)}
            )
        except requests.RequestException as e:
            raise DataUnavailableError(
                f"{self.source_name} request failed: {str(e)}",
                code='TRANSPORT',
                details={'url': url}
            )

        if not response.ok:
            raise DataUnavailableError(
                f"{self.source_name} failed: {response.status_code} - {response.text[:200]}",
                code=f"HTTP_{response.status_code}",
                details={'url': url, 'status': response.status_code}
            )

        return response

    def _json(self, response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise DataUnavailableError(
                f"{self.source_name} returned invalid JSON: {str(e)}",
                code='FORMAT'
            )


def fan_out(max_workers: Optional[int] = None, **loaders: Callable[[], Any]) -> Dict[str, Any]:
    """Run independent loaders concurrently and wait for all of them.

    Args:
        max_workers: Thread pool size (defaults to PLANNING max_workers)
        **loaders: Named callables taking no arguments

    Returns:
        Dictionary of loader name to result

    Raises:
        DataUnavailableError from the first loader that failed
    """
    if not loaders:
        return {}

    max_workers = max_workers or config.planning_config['max_workers']

    with ThreadPoolExecutor(max_workers=min(max_workers, len(loaders))) as executor:
        futures = {name: executor.submit(loader) for name, loader in loaders.items()}

        results = {}
        for name, future in futures.items():
            try:
                results[name] = future.result()
            except PlanningError:
                logger.error(f"Loader {name} failed")
                raise
            except Exception as e:
                logger.error(f"Loader {name} failed: {str(e)}")
                raise DataUnavailableError(f"Failed to load {name}: {str(e)}", details={'loader': name})

    return results
