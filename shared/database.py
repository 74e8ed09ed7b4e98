"""
Database client.

Supabase PostgreSQL client used to look up stored render jobs.
"""

import asyncio
from typing import Any, Callable, Dict, Optional

from supabase import create_client, Client

from shared.errors import ConfigurationError, RetryableError
from shared.logging import get_logger
from shared.retry import retry_with_backoff

logger = get_logger("database")


class DatabaseClient:
    """Supabase database client wrapper with retry logic."""

    def __init__(self, url: Optional[str], service_key: Optional[str]):
        """
        Initialize database client.

        Args:
            url: Supabase project URL
            service_key: Supabase service role key

        Raises:
            ConfigurationError: If credentials are missing or the client cannot be created
        """
        if not url or not service_key:
            raise ConfigurationError("Missing Supabase credentials (SUPABASE_URL, SUPABASE_SERVICE_KEY)")
        try:
            self.client: Client = create_client(url, service_key)
        except Exception as e:
            raise ConfigurationError(f"Failed to initialize database client: {str(e)}") from e

    async def _execute_sync(self, func: Callable[[], Any]) -> Any:
        """
        Execute a synchronous Supabase operation in an async context.

        Raises:
            RetryableError: If the operation fails
        """
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, func)
        except Exception as e:
            raise RetryableError(f"Database operation failed: {str(e)}") from e

    @retry_with_backoff(max_attempts=3, base_delay=2)
    async def fetch_one(self, table: str, column: str, value: Any) -> Optional[Dict[str, Any]]:
        """
        Fetch a single row where `column` equals `value`.

        Args:
            table: Table name
            column: Column to match
            value: Value to match

        Returns:
            Row as a dict, or None if no row matches
        """
        result = await self._execute_sync(
            lambda: self.client.table(table).select("*").eq(column, value).limit(1).execute()
        )
        rows = result.data or []
        if not rows:
            logger.info(f"No row in {table} where {column}={value}")
            return None
        return rows[0]
