"""
flagcore client for feature evaluation.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import httpx

from flagcore.datafile import DatafileReader
from flagcore.errors import FlagcoreError, classify_error
from flagcore.evaluate import Evaluation, EvaluationOptions, evaluate
from flagcore.models import Feature
from flagcore.reasons import EvaluationReasonKind, error_reason
from flagcore.retry import DEFAULT_RETRY_CONFIG, RetryConfig, fetch_with_retry

logger = logging.getLogger("flagcore")

DatafileInput = Union[DatafileReader, Dict[str, Any], str]


@dataclass
class ClientConfig:
    """Configuration for flagcore client."""

    datafile: Optional[DatafileInput] = None
    """Initial datafile: a reader, a parsed dictionary or JSON text."""

    datafile_url: Optional[str] = None
    """URL to fetch the datafile from on init() and refresh()."""

    refresh_interval_ms: int = 0
    """Polling interval in milliseconds. 0 disables polling."""

    timeout_ms: int = 5000
    """Request timeout in milliseconds."""

    retry: RetryConfig = field(default_factory=lambda: DEFAULT_RETRY_CONFIG)
    """Retry configuration for datafile fetches."""

    bucket_key_separator: str = "."
    """Separator between the parts of a bucket key."""

    configure_bucket_key: Optional[Callable[[Feature, Dict[str, Any], str], str]] = None
    """Hook to rewrite bucket keys before hashing."""

    configure_bucket_value: Optional[Callable[[Feature, Dict[str, Any], int], int]] = None
    """Hook to replace computed bucket values."""


class FlagcoreClient:
    """
    flagcore feature client.

    Evaluation never touches the network: it reads the datafile revision held
    at call time. A new revision replaces the old one in a single assignment,
    so an evaluation sees one revision from start to end.

    Example:
        ```python
        client = FlagcoreClient(ClientConfig(datafile_url="https://cdn.example.com/datafile.json"))
        await client.init()

        if client.is_enabled("checkout", {"userId": "123", "country": "nl"}):
            # Feature is enabled
            pass

        await client.close()
        ```
    """

    def __init__(self, config: Optional[ClientConfig] = None):
        """
        Initialize the client.

        Args:
            config: Client configuration
        """
        self._config = config or ClientConfig()
        self._reader: Optional[DatafileReader] = None
        self._options = EvaluationOptions(
            bucket_key_separator=self._config.bucket_key_separator,
            configure_bucket_key=self._config.configure_bucket_key,
            configure_bucket_value=self._config.configure_bucket_value,
        )
        self._last_etag: Optional[str] = None
        self._http_client: Optional[httpx.AsyncClient] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._closing = False

        self._callbacks: Dict[str, List[Callable]] = {
            "ready": [],
            "refresh": [],
            "update": [],
            "error": [],
        }

        if self._config.datafile is not None:
            self.set_datafile(self._config.datafile)

    def on(self, event: str, callback: Callable) -> "FlagcoreClient":
        """
        Register an event callback.

        Args:
            event: Event name
            callback: Callback function

        Returns:
            Self for chaining
        """
        if event in self._callbacks:
            self._callbacks[event].append(callback)
        return self

    def off(self, event: str, callback: Callable) -> "FlagcoreClient":
        """Remove an event callback."""
        if event in self._callbacks and callback in self._callbacks[event]:
            self._callbacks[event].remove(callback)
        return self

    def _emit(self, event: str, *args) -> None:
        """Emit an event to all registered callbacks."""
        for callback in self._callbacks.get(event, []):
            try:
                callback(*args)
            except Exception as e:
                logger.warning(f"Error in event callback: {e}")

    def set_datafile(self, datafile: DatafileInput) -> None:
        """
        Replace the current datafile revision.

        Raises:
            DatafileError: if the datafile cannot be parsed
        """
        if isinstance(datafile, DatafileReader):
            reader = datafile
        elif isinstance(datafile, str):
            reader = DatafileReader.from_json(datafile)
        else:
            reader = DatafileReader.from_dict(datafile)

        previous = self._reader
        self._reader = reader
        logger.debug(f"Datafile revision set to {reader.revision!r}")

        if previous is not None and previous.revision != reader.revision:
            self._emit("update", reader.revision, previous.revision)

    def get_revision(self) -> Optional[str]:
        """Get the revision of the current datafile."""
        reader = self._reader
        return reader.revision if reader is not None else None

    def is_ready(self) -> bool:
        """Whether a datafile is available for evaluation."""
        return self._reader is not None

    async def init(self) -> None:
        """Fetch the datafile when a URL is configured and start polling."""
        if self._config.datafile_url:
            self._http_client = httpx.AsyncClient(timeout=self._config.timeout_ms / 1000)
            await self._fetch_datafile()

            if self._config.refresh_interval_ms > 0:
                self._poll_task = asyncio.create_task(self._start_polling())

        self._emit("ready")

    async def refresh(self) -> bool:
        """
        Force a datafile fetch.

        Emits "refresh" only when the fetch succeeded, including a 304.

        Returns:
            True if the datafile was fetched (or was not modified)
        """
        if not self._config.datafile_url or self._http_client is None:
            logger.warning("No datafile URL configured or client not initialized; nothing to refresh.")
            return False

        if not await self._fetch_datafile():
            return False

        self._emit("refresh")
        return True

    async def _start_polling(self) -> None:
        """Start background polling for datafile updates."""
        while not self._closing:
            await asyncio.sleep(self._config.refresh_interval_ms / 1000)
            if self._closing:
                break
            try:
                await self.refresh()
            except Exception as e:
                logger.warning(f"Polling error: {e}")

    async def _fetch_datafile(self) -> bool:
        """Fetch the datafile, keeping the current revision on failure."""
        result = await fetch_with_retry(self._single_fetch, self._config.retry)

        if not result.success:
            classified = classify_error(result.error or Exception("Fetch failed"))
            logger.error(f"Error fetching datafile: {classified.message}")
            self._emit("error", classified)
            return False

        if result.data is None:
            # 304 Not Modified
            return True

        text, etag = result.data
        try:
            self.set_datafile(text)
        except FlagcoreError as e:
            logger.error(f"Error parsing datafile: {e.message}")
            self._emit("error", e)
            return False

        # only a body that parsed may be answered with 304 later
        self._last_etag = etag
        return True

    async def _single_fetch(self) -> Optional[Tuple[str, Optional[str]]]:
        """
        Single fetch attempt.

        Returns:
            The body and its ETag, or None when the server answered 304

        Raises:
            httpx.TransportError: if the server cannot be reached
            httpx.HTTPStatusError: on an error status
        """
        headers = {"Accept": "application/json"}
        if self._last_etag:
            headers["If-None-Match"] = self._last_etag

        response = await self._http_client.get(self._config.datafile_url, headers=headers)
        if response.status_code == 304:
            return None

        response.raise_for_status()
        return response.text, response.headers.get("ETag")

    def evaluate_flag(self, feature_key: str, context: Optional[Dict[str, Any]] = None) -> Evaluation:
        """
        Evaluate a feature with full details.

        Errors raised by the engine are logged, emitted as "error" and
        returned as an ERROR reason.
        """
        reader = self._reader
        if reader is None:
            logger.warning("Datafile not set. Call init() or set_datafile() first.")
            return Evaluation(
                feature_key=feature_key,
                enabled=False,
                reason=error_reason(FlagcoreError("Datafile not set")),
            )

        try:
            return evaluate(reader, feature_key, context, self._options)
        except FlagcoreError as e:
            logger.error(f"Error evaluating feature {feature_key!r}: {e.message}")
            self._emit("error", e)
            return Evaluation(feature_key=feature_key, enabled=False, reason=error_reason(e))

    def is_enabled(
        self,
        feature_key: str,
        context: Optional[Dict[str, Any]] = None,
        default_value: bool = False,
    ) -> bool:
        """
        Check if a feature is enabled.

        Args:
            feature_key: The feature key to check
            context: Attributes of the current user/request
            default_value: Returned when the feature is unknown or evaluation fails

        Returns:
            True if the feature is enabled
        """
        evaluation = self.evaluate_flag(feature_key, context)
        if evaluation.reason.kind in (EvaluationReasonKind.NOT_FOUND, EvaluationReasonKind.ERROR):
            return default_value
        return evaluation.enabled

    def get_variation(
        self,
        feature_key: str,
        context: Optional[Dict[str, Any]] = None,
        default_value: Optional[str] = None,
    ) -> Optional[str]:
        """Get the variation of an enabled feature."""
        evaluation = self.evaluate_flag(feature_key, context)
        if evaluation.variation is None:
            return default_value
        return evaluation.variation

    def get_variable(
        self,
        feature_key: str,
        variable_key: str,
        context: Optional[Dict[str, Any]] = None,
        default_value: Any = None,
    ) -> Any:
        """Get a variable value of an enabled feature."""
        evaluation = self.evaluate_flag(feature_key, context)
        return evaluation.variables.get(variable_key, default_value)

    async def close(self) -> None:
        """Close the client and cleanup resources."""
        self._closing = True

        if self._poll_task:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass

        if self._http_client:
            await self._http_client.aclose()

    async def __aenter__(self) -> "FlagcoreClient":
        """Async context manager entry."""
        await self.init()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
