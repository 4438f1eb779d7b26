"""
================================================================================
Database IO
================================================================================

Bolt client helpers used to verify a running Neo4j container.

Every method opens its own driver and closes it before returning, so a failed
check never leaks connections into the next test. Driver errors are mapped to
harness exceptions so tests can tell a wrong credential from an unreachable
server and both from a container that never started:

    DatabaseIOError
     ├── AuthenticationFailure   server answered, credentials rejected
     └── ConnectivityError       server not reachable over Bolt

No retries happen here; readiness is established before these calls.

Author: Automation Team
License: MIT
================================================================================
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

import allure
from loguru import logger
from neo4j import Driver, GraphDatabase
from neo4j.exceptions import (
    AuthError,
    DriverError,
    Neo4jError,
    ServiceUnavailable,
    SessionExpired,
)


DEFAULT_CONNECTION_TIMEOUT = 10.0

INITIAL_DATA_QUERY = (
    "CREATE (arthur:Person {name: 'Arthur', title: 'King'})"
    "-[:KNOWS]->(:Person {name: 'Lancelot', title: 'Sir'})"
)
INITIAL_DATA_CHECK_QUERY = (
    "MATCH (a:Person {name: 'Arthur'})-[:KNOWS]->(b:Person) "
    "RETURN a.title AS title, b.name AS friend"
)


class DatabaseIOError(Exception):
    """Base exception for Bolt verification failures."""
    pass


class AuthenticationFailure(DatabaseIOError):
    """Raised when the server rejects the supplied credentials."""
    pass


class ConnectivityError(DatabaseIOError):
    """Raised when the server cannot be reached over Bolt."""
    pass


class DatabaseIO:
    """
    Bolt access to one database endpoint.

    Usage:
        >>> dbio = DatabaseIO(compose.get_service_host("db", 7687),
        ...                   compose.get_service_port("db", 7687))
        >>> dbio.verify_connectivity("neo4j", "secret")
    """

    def __init__(
        self,
        host: str,
        port: int,
        scheme: str = "bolt",
        connection_timeout: float = DEFAULT_CONNECTION_TIMEOUT,
    ) -> None:
        self.host = host
        self.port = int(port)
        self.scheme = scheme
        self.connection_timeout = connection_timeout

    @property
    def uri(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}"

    @contextmanager
    def _driver(self, user: str, password: str) -> Iterator[Driver]:
        try:
            driver = GraphDatabase.driver(
                self.uri,
                auth=(user, password),
                connection_timeout=self.connection_timeout,
            )
        except (DriverError, ValueError) as e:
            raise ConnectivityError(f"Cannot create driver for {self.uri}: {e}") from e

        try:
            yield driver
        except AuthError as e:
            raise AuthenticationFailure(
                f"Authentication as '{user}' rejected by {self.uri}: {e}"
            ) from e
        except (ServiceUnavailable, SessionExpired, OSError) as e:
            raise ConnectivityError(f"Cannot connect to {self.uri}: {e}") from e
        except (Neo4jError, DriverError) as e:
            raise DatabaseIOError(f"Query against {self.uri} failed: {e}") from e
        finally:
            driver.close()

    def verify_connectivity(self, user: str, password: str) -> None:
        """
        Open an authenticated connection and run a trivial query.

        Raises:
            AuthenticationFailure: Credentials rejected
            ConnectivityError: Server unreachable
        """
        with allure.step(f"Verify Bolt connectivity to {self.uri} as {user}"):
            with self._driver(user, password) as driver:
                driver.verify_connectivity()
                with driver.session() as session:
                    value = session.run("RETURN 1 AS ok").single(strict=True)["ok"]
            if value != 1:
                raise DatabaseIOError(f"Unexpected connectivity check result from {self.uri}: {value}")
            logger.info(f"Connected to {self.uri} as {user}")

    def run_query(
        self,
        user: str,
        password: str,
        query: str,
        database: Optional[str] = None,
        **parameters: Any,
    ) -> List[Dict[str, Any]]:
        """Run one query and return its records as dicts."""
        with self._driver(user, password) as driver:
            with driver.session(database=database) as session:
                result = session.run(query, parameters)
                return [record.data() for record in result]

    def put_initial_data(self, user: str, password: str, database: Optional[str] = None) -> None:
        """Write a small known graph used to check persistence."""
        with allure.step(f"Write initial data to {self.uri}"):
            self.run_query(user, password, INITIAL_DATA_QUERY, database=database)

    def verify_initial_data(self, user: str, password: str, database: Optional[str] = None) -> None:
        """Assert the graph written by put_initial_data() is present."""
        with allure.step(f"Verify initial data on {self.uri}"):
            records = self.run_query(user, password, INITIAL_DATA_CHECK_QUERY, database=database)
        assert len(records) == 1, f"Expected one Arthur->KNOWS record, got {records}"
        assert records[0] == {"title": "King", "friend": "Lancelot"}, (
            f"Unexpected initial data: {records[0]}"
        )

    def change_password(self, user: str, old_password: str, new_password: str) -> None:
        """Change the connecting user's own password."""
        with allure.step(f"Change password of {user} on {self.uri}"):
            self.run_query(
                user,
                old_password,
                "ALTER CURRENT USER SET PASSWORD FROM $old TO $new",
                database="system",
                old=old_password,
                new=new_password,
            )


__all__ = [
    "AuthenticationFailure",
    "ConnectivityError",
    "DatabaseIO",
    "DatabaseIOError",
]
