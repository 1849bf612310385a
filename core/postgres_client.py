"""
PostgreSQL Client Wrapper for the freight services

Thin wrapper around an asyncpg connection pool. Rows come back as plain
dicts so repositories never touch asyncpg types.

Usage:
    from core.postgres_client import get_postgres_client

    # Get client instance
    db = await get_postgres_client("shipment_service")

    # Execute queries
    async with db:
        rows = await db.query("SELECT * FROM shipments WHERE shipper_id = $1", [shipper_id])
"""

import logging
from typing import Any, Dict, List, Optional

import asyncpg

logger = logging.getLogger(__name__)


class PostgresClientWrapper:
    """
    PostgreSQL client wrapper.

    Provides:
    - Endpoint resolution through ConfigManager (env -> settings default)
    - A lazily created asyncpg pool pinned to the freight schema
    - dict rows for query / query_row
    """

    def __init__(
        self,
        service_name: str,
        host: Optional[str] = None,
        port: Optional[int] = None,
        database: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        schema: Optional[str] = None,
    ):
        """
        Initialize PostgreSQL client wrapper.

        Args:
            service_name: Name of the service using this client
            host: PostgreSQL host (defaults to env/settings)
            port: PostgreSQL port (defaults to 5432)
            database: Database name
            username: Database username
            password: Database password
            schema: Schema placed first on the search_path
        """
        from core.config_manager import ConfigManager

        self.service_name = service_name

        config = ConfigManager(service_name)
        infra = config.settings.infrastructure
        discovered_host, discovered_port = config.discover_service(
            service_name="postgres",
            default_host=infra.postgres_host,
            default_port=infra.postgres_port,
            env_host_key="POSTGRES_HOST",
            env_port_key="POSTGRES_PORT",
        )

        # Apply overrides
        self.host = host or discovered_host
        self.port = port or discovered_port
        self.database = database or infra.postgres_db
        self.username = username or infra.postgres_user
        self.password = password or infra.postgres_password
        self.schema = schema or infra.postgres_schema
        self.min_size = infra.postgres_pool_min
        self.max_size = infra.postgres_pool_max

        self._pool: Optional[asyncpg.Pool] = None

        logger.info(f"PostgreSQL client initialized for {service_name}: {self.host}:{self.port}/{self.database}")

    async def connect(self) -> asyncpg.Pool:
        """Create the connection pool on first use"""
        if self._pool is None:
            self._pool = await asyncpg.create_pool(
                host=self.host,
                port=self.port,
                database=self.database,
                user=self.username,
                password=self.password,
                min_size=self.min_size,
                max_size=self.max_size,
                server_settings={"search_path": f"{self.schema},public"},
            )
            logger.info(f"PostgreSQL pool ready for {self.service_name} (schema={self.schema})")
        return self._pool

    async def __aenter__(self):
        """Async context manager entry"""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit (the pool is kept for reuse)"""
        return None

    async def health_check(self) -> Optional[Dict]:
        """Check database health"""
        try:
            pool = await self.connect()
            value = await pool.fetchval("SELECT 1")
            return {"healthy": value == 1, "database": self.database}
        except Exception as e:
            logger.error(f"PostgreSQL health check failed: {e}")
            return None

    async def query(self, sql: str, params: Optional[List[Any]] = None) -> List[Dict[str, Any]]:
        """Execute query and return results"""
        pool = await self.connect()
        rows = await pool.fetch(sql, *(params or []))
        return [dict(row) for row in rows]

    async def query_row(self, sql: str, params: Optional[List[Any]] = None) -> Optional[Dict[str, Any]]:
        """Execute query and return single row"""
        pool = await self.connect()
        row = await pool.fetchrow(sql, *(params or []))
        return dict(row) if row is not None else None

    async def execute(self, sql: str, params: Optional[List[Any]] = None) -> int:
        """Execute SQL statement, return the number of affected rows"""
        pool = await self.connect()
        status = await pool.execute(sql, *(params or []))
        # Status tags look like "UPDATE 1" / "INSERT 0 1"
        try:
            return int(status.split()[-1])
        except (ValueError, IndexError):
            return 0

    async def execute_many(self, sql: str, params_list: List[List[Any]]) -> bool:
        """Execute SQL statement with multiple parameter sets"""
        pool = await self.connect()
        await pool.executemany(sql, params_list)
        return True

    async def close(self):
        """Close the pool"""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None


# Singleton instances per service
_postgres_clients: Dict[str, PostgresClientWrapper] = {}


async def get_postgres_client(
    service_name: str,
    host: Optional[str] = None,
    port: Optional[int] = None,
    database: Optional[str] = None,
    **kwargs,
) -> PostgresClientWrapper:
    """
    Get or create PostgreSQL client for a service.

    Args:
        service_name: Service name
        host: Optional host override
        port: Optional port override
        database: Optional database override
        **kwargs: Additional client options

    Returns:
        PostgresClientWrapper instance
    """
    global _postgres_clients

    if service_name not in _postgres_clients:
        client = PostgresClientWrapper(
            service_name=service_name,
            host=host,
            port=port,
            database=database,
            **kwargs,
        )
        _postgres_clients[service_name] = client

    return _postgres_clients[service_name]
