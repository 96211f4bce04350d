"""
PostgreSQL Provider Adapter

Lists tables, reads rows and runs SQL against a user-supplied database.
Statements run through a short-lived SQLAlchemy engine in a worker thread.
"""

import asyncio
import re
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import URL, Connection, Engine
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.pool import NullPool

from ...models.credential import CredentialType, ProviderCredential
from .base import (
    AdapterContext,
    AuthenticationError,
    ProviderAdapter,
    TemporaryError,
    TransportError,
    ValidationError,
    register_adapter,
)

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]*$")

DEFAULT_LIMIT = 100


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    return value


def _rows(result) -> List[Dict[str, Any]]:
    return [{key: _jsonable(value) for key, value in row.items()} for row in result.mappings().all()]


def _identifier(name: Any, label: str) -> str:
    if not name or not isinstance(name, str) or not IDENTIFIER_PATTERN.match(name):
        raise ValidationError(f"Invalid {label} name: {name!r}")
    return name


def _int_value(value: Any, default: int, label: str) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be an integer")


@register_adapter("postgres")
class PostgresAdapter(ProviderAdapter):
    """PostgreSQL adapter: postgres.listTables|getRows|query|insert|update|delete."""

    supported_operations = [
        "postgres.listTables",
        "postgres.getRows",
        "postgres.query",
        "postgres.insert",
        "postgres.update",
        "postgres.delete",
    ]

    async def execute_operation(
        self,
        operation: str,
        input_data: Dict[str, Any],
        credentials: Optional[ProviderCredential],
        context: AdapterContext,
    ) -> Dict[str, Any]:
        self.validate_input(operation, input_data)
        connection_url = self.get_connection_url(input_data, credentials)
        handler: Callable[[Connection, Dict[str, Any]], Dict[str, Any]] = {
            "postgres.listTables": self._list_tables,
            "postgres.getRows": self._get_rows,
            "postgres.query": self._query,
            "postgres.insert": self._insert,
            "postgres.update": self._update,
            "postgres.delete": self._delete,
        }[operation]

        self.logger.info(f"Running {operation} for user {context.user_id}")
        return await asyncio.to_thread(self._run, connection_url, handler, input_data)

    @classmethod
    def validate_input(cls, operation: str, input_data: Dict[str, Any]) -> None:
        """Check required fields before any connection is opened."""
        if operation == "postgres.query":
            if not input_data.get("query") or not isinstance(input_data["query"], str):
                raise ValidationError("SQL query is required")
            return
        if operation == "postgres.listTables":
            return

        _identifier(input_data.get("table"), "table")
        if operation in ("postgres.insert", "postgres.update"):
            cls._data(input_data, operation.split(".")[1])
        if operation in ("postgres.update", "postgres.delete"):
            cls._require_where(input_data, operation.split(".")[1])

    @staticmethod
    def get_connection_url(input_data: Dict[str, Any], credentials: Optional[ProviderCredential]) -> Any:
        """Connection string from input, then the api_key credential, then discrete parameters."""
        connection_string = input_data.get("connectionString")
        if not connection_string and credentials is not None and credentials.type == CredentialType.API_KEY:
            connection_string = credentials.api_key

        if connection_string and isinstance(connection_string, str):
            if connection_string.startswith("postgres://"):
                connection_string = "postgresql://" + connection_string[len("postgres://"):]
            return connection_string

        if input_data.get("host") and input_data.get("database"):
            return URL.create(
                "postgresql",
                username=input_data.get("user") or "postgres",
                password=input_data.get("password") or "",
                host=input_data["host"],
                port=_int_value(input_data.get("port"), 5432, "Port"),
                database=input_data["database"],
            )

        raise AuthenticationError("PostgreSQL connection string or connection details required")

    def _create_engine(self, connection_url: Any) -> Engine:
        connect_args: Dict[str, Any] = {}
        if not str(connection_url).startswith("sqlite"):
            connect_args = {"application_name": "payflow_engine", "connect_timeout": int(self.timeout)}
        return create_engine(connection_url, poolclass=NullPool, connect_args=connect_args)

    def _run(
        self,
        connection_url: Any,
        handler: Callable[[Connection, Dict[str, Any]], Dict[str, Any]],
        input_data: Dict[str, Any],
    ) -> Dict[str, Any]:
        try:
            engine = self._create_engine(connection_url)
        except (SQLAlchemyError, ValueError) as e:
            raise ValidationError(f"Invalid PostgreSQL connection string: {e}")

        try:
            with engine.begin() as conn:
                return handler(conn, input_data)
        except DBAPIError as e:
            if e.connection_invalidated:
                raise TemporaryError(f"PostgreSQL connection lost: {e.orig}")
            raise TransportError(f"PostgreSQL error: {e.orig}", body=str(e.orig))
        except SQLAlchemyError as e:
            raise TransportError(f"PostgreSQL error: {e}")
        finally:
            engine.dispose()

    @staticmethod
    def _schema(conn: Connection, input_data: Dict[str, Any]) -> Optional[str]:
        schema = input_data.get("schema")
        if schema:
            return _identifier(schema, "schema")
        return "public" if conn.dialect.name == "postgresql" else None

    @staticmethod
    def _qualified(conn: Connection, schema: Optional[str], table: str) -> str:
        quote = conn.dialect.identifier_preparer.quote
        if schema:
            return f"{quote(schema)}.{quote(table)}"
        return quote(table)

    @classmethod
    def _where(cls, input_data: Dict[str, Any], where: str) -> Tuple[str, Dict[str, Any]]:
        """Rewrite the WHERE clause and its params under the w_ namespace."""
        params = input_data.get("params") or {}
        if not isinstance(params, dict):
            raise ValidationError("params must be an object")
        clause = cls._where_clause(where, params) if where else ""
        return clause, {f"w_{key}": value for key, value in params.items()}

    @staticmethod
    def _where_clause(where: str, params: Dict[str, Any]) -> str:
        # Only :name parameters present in params are namespaced, and quoted literals are left alone
        if not params:
            return where
        names = "|".join(re.escape(key) for key in sorted(params, key=len, reverse=True))
        pattern = re.compile(rf"""'(?:[^']|'')*'|"(?:[^"]|"")*"|(?<![:\w]):({names})\b""")

        def rename(match: "re.Match[str]") -> str:
            return f":w_{match.group(1)}" if match.group(1) else match.group(0)

        return pattern.sub(rename, where)

    def _list_tables(self, conn: Connection, input_data: Dict[str, Any]) -> Dict[str, Any]:
        schema = self._schema(conn, input_data)
        inspector = inspect(conn)

        tables = []
        for name, table_type in [(n, "BASE TABLE") for n in inspector.get_table_names(schema=schema)] + [
            (n, "VIEW") for n in inspector.get_view_names(schema=schema)
        ]:
            try:
                with conn.begin_nested():
                    row_count = conn.execute(
                        text(f"SELECT COUNT(*) AS count FROM {self._qualified(conn, schema, name)}")
                    ).scalar()
            except SQLAlchemyError:
                row_count = None
            tables.append({"name": name, "type": table_type, "rowCount": row_count})

        tables.sort(key=lambda t: t["name"])
        return {"schema": schema, "tables": tables, "count": len(tables)}

    def _get_rows(self, conn: Connection, input_data: Dict[str, Any]) -> Dict[str, Any]:
        table = _identifier(input_data.get("table"), "table")
        schema = self._schema(conn, input_data)
        limit = _int_value(input_data.get("limit"), DEFAULT_LIMIT, "Limit")
        offset = _int_value(input_data.get("offset"), 0, "Offset")
        where = input_data.get("where")
        order_by = input_data.get("orderBy")
        direction = "DESC" if str(input_data.get("orderDirection") or "ASC").upper() == "DESC" else "ASC"

        target = self._qualified(conn, schema, table)
        clause, params = self._where(input_data, where)
        where_sql = f" WHERE {clause}" if clause else ""

        query = f"SELECT * FROM {target}{where_sql}"
        if order_by:
            query += f" ORDER BY {conn.dialect.identifier_preparer.quote(_identifier(order_by, 'column'))} {direction}"
        query += " LIMIT :limit OFFSET :offset"

        rows = _rows(conn.execute(text(query), {**params, "limit": limit, "offset": offset}))
        total = conn.execute(text(f"SELECT COUNT(*) AS total FROM {target}{where_sql}"), params).scalar()

        columns = [
            {"name": column["name"], "type": str(column["type"]), "nullable": bool(column.get("nullable", True))}
            for column in inspect(conn).get_columns(table, schema=schema)
        ]

        return {
            "table": table,
            "schema": schema,
            "rows": rows,
            "columns": columns,
            "count": len(rows),
            "totalCount": int(total or 0),
            "limit": limit,
            "offset": offset,
        }

    def _query(self, conn: Connection, input_data: Dict[str, Any]) -> Dict[str, Any]:
        query = input_data.get("query")
        if not query or not isinstance(query, str):
            raise ValidationError("SQL query is required")

        params = input_data.get("params") or {}
        if not isinstance(params, dict):
            raise ValidationError("params must be an object")

        result = conn.execute(text(query), params)
        rows = _rows(result) if result.returns_rows else []
        return {"rows": rows, "count": len(rows) if result.returns_rows else result.rowcount, "query": query}

    @staticmethod
    def _data(input_data: Dict[str, Any], action: str) -> Dict[str, Any]:
        data = input_data.get("data")
        if not isinstance(data, dict) or not data:
            raise ValidationError(f"Table name and data are required to {action}")
        for column in data:
            _identifier(column, "column")
        return data

    def _insert(self, conn: Connection, input_data: Dict[str, Any]) -> Dict[str, Any]:
        table = _identifier(input_data.get("table"), "table")
        data = self._data(input_data, "insert")
        quote = conn.dialect.identifier_preparer.quote

        columns = ", ".join(quote(column) for column in data)
        placeholders = ", ".join(f":v{i}" for i in range(len(data)))
        values = {f"v{i}": value for i, value in enumerate(data.values())}

        query = (
            f"INSERT INTO {self._qualified(conn, self._schema(conn, input_data), table)} "
            f"({columns}) VALUES ({placeholders}) RETURNING *"
        )
        rows = _rows(conn.execute(text(query), values))
        return {"inserted": rows[0] if rows else None, "table": table, "success": True}

    @staticmethod
    def _require_where(input_data: Dict[str, Any], action: str) -> str:
        where = input_data.get("where")
        if not where or not isinstance(where, str) or not where.strip():
            raise ValidationError(f"A WHERE clause is required to {action} rows")
        return where

    def _update(self, conn: Connection, input_data: Dict[str, Any]) -> Dict[str, Any]:
        table = _identifier(input_data.get("table"), "table")
        data = self._data(input_data, "update")
        where = self._require_where(input_data, "update")
        quote = conn.dialect.identifier_preparer.quote

        set_clause = ", ".join(f"{quote(column)} = :v{i}" for i, column in enumerate(data))
        values = {f"v{i}": value for i, value in enumerate(data.values())}
        clause, params = self._where(input_data, where)
        values.update(params)

        query = (
            f"UPDATE {self._qualified(conn, self._schema(conn, input_data), table)} "
            f"SET {set_clause} WHERE {clause} RETURNING *"
        )
        rows = _rows(conn.execute(text(query), values))
        return {"updated": rows, "count": len(rows), "table": table, "success": True}

    def _delete(self, conn: Connection, input_data: Dict[str, Any]) -> Dict[str, Any]:
        table = _identifier(input_data.get("table"), "table")
        where = self._require_where(input_data, "delete")
        clause, params = self._where(input_data, where)

        query = (
            f"DELETE FROM {self._qualified(conn, self._schema(conn, input_data), table)} "
            f"WHERE {clause} RETURNING *"
        )
        rows = _rows(conn.execute(text(query), params))
        return {"deleted": rows, "count": len(rows), "table": table, "success": True}
