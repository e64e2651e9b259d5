"""
Database access for the GIFT CHOICE API.

A thin layer over a pooled SQLAlchemy engine: hand-written SQL goes through
query()/execute(), multi-statement writes go through transaction(), and the
small create/get/update/delete helpers cover the plain single-table cases.
init_db() owns the schema and is safe to run any number of times.
"""
import json
import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional, TypeVar

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from settings import settings

logger = logging.getLogger("uvicorn")

T = TypeVar("T")

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"

_engine: Optional[Engine] = None


class DatabaseError(Exception):
    """Any connection, syntax or constraint failure coming out of the driver."""

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


def _detail(exc: SQLAlchemyError) -> str:
    orig = getattr(exc, "orig", None)
    return str(orig if orig is not None else exc)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        url = settings.resolved_database_url
        kwargs: Dict[str, Any] = {"pool_pre_ping": True}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
        else:
            kwargs["pool_size"] = settings.db_pool_size
        _engine = create_engine(url, **kwargs)
        if _engine.dialect.name == "sqlite":
            event.listen(_engine, "connect", _enable_sqlite_foreign_keys)
        logger.info(f"Database engine ready ({_engine.dialect.name})")
    return _engine


def dialect_name() -> str:
    return get_engine().dialect.name


# -----------------------------
# Value helpers
# -----------------------------

def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def loads_json(value: Any, default: Any = None) -> Any:
    if value is None or value == "":
        return default
    if isinstance(value, (bytes, bytearray)):
        value = value.decode()
    if isinstance(value, str):
        return json.loads(value)
    return value


def _adapt(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.strftime(TIMESTAMP_FORMAT)
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    return value


def _adapt_params(params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {k: _adapt(v) for k, v in (params or {}).items()}


# -----------------------------
# Core executors
# -----------------------------

@contextmanager
def _connection(conn: Optional[Connection]) -> Iterator[Connection]:
    if conn is not None:
        yield conn
        return
    try:
        with get_engine().begin() as own:
            yield own
    except SQLAlchemyError as exc:
        raise DatabaseError("Database request failed", _detail(exc)) from exc


def _run(conn: Connection, sql: str, params: Optional[Dict[str, Any]]):
    try:
        return conn.execute(text(sql), _adapt_params(params))
    except SQLAlchemyError as exc:
        raise DatabaseError("Database query failed", _detail(exc)) from exc


def query(sql: str, params: Optional[Dict[str, Any]] = None, conn: Optional[Connection] = None) -> List[Dict[str, Any]]:
    """Run a statement and return its rows as dicts (empty for writes)."""
    with _connection(conn) as c:
        result = _run(c, sql, params)
        if not result.returns_rows:
            return []
        return [dict(row._mapping) for row in result]


def execute(sql: str, params: Optional[Dict[str, Any]] = None, conn: Optional[Connection] = None) -> int:
    """Run a write statement and return the affected row count."""
    with _connection(conn) as c:
        return _run(c, sql, params).rowcount


def transaction(callback: Callable[[Connection], T]) -> T:
    """Run callback(conn) between BEGIN and COMMIT.

    Any exception raised by the callback (or by COMMIT) rolls the work back
    and propagates; the connection goes back to the pool either way.
    """
    try:
        with get_engine().connect() as conn:
            with conn.begin():
                return callback(conn)
    except SQLAlchemyError as exc:
        raise DatabaseError("Transaction failed", _detail(exc)) from exc


# -----------------------------
# Document-style helpers
# -----------------------------

def create_document(table: str, data: Dict[str, Any], conn: Optional[Connection] = None) -> str:
    """Insert one row, filling in id and created_at when missing. Returns the id."""
    row = dict(data)
    row.setdefault("id", new_id())
    row.setdefault("created_at", utcnow())
    columns = ", ".join(row.keys())
    values = ", ".join(f":{k}" for k in row.keys())
    execute(f"INSERT INTO {table} ({columns}) VALUES ({values})", row, conn=conn)
    return row["id"]


def get_document(table: str, doc_id: str, conn: Optional[Connection] = None) -> Optional[Dict[str, Any]]:
    rows = query(f"SELECT * FROM {table} WHERE id = :id", {"id": doc_id}, conn=conn)
    return rows[0] if rows else None


def get_documents(
    table: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    order_by: str = "created_at DESC",
) -> List[Dict[str, Any]]:
    sql = f"SELECT * FROM {table} WHERE 1=1"
    params: Dict[str, Any] = {}
    for column, value in (filter_dict or {}).items():
        sql += f" AND {column} = :{column}"
        params[column] = value
    sql += f" ORDER BY {order_by}"
    if limit:
        sql += " LIMIT :limit"
        params["limit"] = int(limit)
    return query(sql, params)


def update_document(table: str, doc_id: str, changes: Dict[str, Any], conn: Optional[Connection] = None) -> int:
    if not changes:
        return 0
    assignments = ", ".join(f"{k} = :{k}" for k in changes)
    params = dict(changes)
    params["id"] = doc_id
    return execute(f"UPDATE {table} SET {assignments} WHERE id = :id", params, conn=conn)


def delete_document(table: str, doc_id: str, conn: Optional[Connection] = None) -> int:
    return execute(f"DELETE FROM {table} WHERE id = :id", {"id": doc_id}, conn=conn)


# -----------------------------
# Schema
# -----------------------------

SCHEMA = {
    "sessions": """
        CREATE TABLE IF NOT EXISTS sessions (
          id VARCHAR(64) PRIMARY KEY,
          expires_at DATETIME(6) NOT NULL,
          created_at DATETIME(6) NOT NULL
        )
    """,
    "categories": """
        CREATE TABLE IF NOT EXISTS categories (
          id VARCHAR(64) PRIMARY KEY,
          name VARCHAR(255) NOT NULL,
          slug VARCHAR(255) NOT NULL UNIQUE,
          image VARCHAR(500),
          subcategories TEXT,
          created_at DATETIME(6) NOT NULL,
          updated_at DATETIME(6)
        )
    """,
    "products": """
        CREATE TABLE IF NOT EXISTS products (
          id VARCHAR(64) PRIMARY KEY,
          name VARCHAR(500) NOT NULL,
          description TEXT,
          price DECIMAL(10, 2) NOT NULL,
          images TEXT,
          category_id VARCHAR(64),
          subcategory VARCHAR(255),
          sizes TEXT,
          badge VARCHAR(100),
          in_stock BOOLEAN NOT NULL DEFAULT 1,
          is_featured BOOLEAN NOT NULL DEFAULT 0,
          is_new_arrival BOOLEAN NOT NULL DEFAULT 0,
          is_festival BOOLEAN NOT NULL DEFAULT 0,
          created_at DATETIME(6) NOT NULL,
          updated_at DATETIME(6),
          FOREIGN KEY (category_id) REFERENCES categories(id) ON DELETE SET NULL
        )
    """,
    "product_reviews": """
        CREATE TABLE IF NOT EXISTS product_reviews (
          id VARCHAR(64) PRIMARY KEY,
          product_id VARCHAR(64) NOT NULL,
          customer_name VARCHAR(255) NOT NULL,
          rating INT NOT NULL,
          comment TEXT,
          created_at DATETIME(6) NOT NULL,
          FOREIGN KEY (product_id) REFERENCES products(id) ON DELETE CASCADE
        )
    """,
    # selected_size_name is '' for size-less lines so the unique key covers them
    "cart_items": """
        CREATE TABLE IF NOT EXISTS cart_items (
          id VARCHAR(64) PRIMARY KEY,
          session_id VARCHAR(64) NOT NULL,
          product_id VARCHAR(64) NOT NULL,
          quantity INT NOT NULL DEFAULT 1,
          selected_size_name VARCHAR(100) NOT NULL DEFAULT '',
          unit_price DECIMAL(10, 2) NOT NULL,
          created_at DATETIME(6) NOT NULL,
          updated_at DATETIME(6),
          UNIQUE (session_id, product_id, selected_size_name),
          FOREIGN KEY (session_id) REFERENCES sessions(id) ON DELETE CASCADE,
          FOREIGN KEY (product_id) REFERENCES products(id) ON DELETE CASCADE
        )
    """,
    "orders": """
        CREATE TABLE IF NOT EXISTS orders (
          id VARCHAR(64) PRIMARY KEY,
          session_id VARCHAR(64),
          customer_name VARCHAR(255) NOT NULL,
          customer_phone VARCHAR(50) NOT NULL,
          customer_email VARCHAR(255),
          total DECIMAL(10, 2) NOT NULL,
          status VARCHAR(20) NOT NULL DEFAULT 'pending',
          created_at DATETIME(6) NOT NULL,
          updated_at DATETIME(6)
        )
    """,
    # no foreign key to products: order lines are snapshots and outlive the catalog
    "order_items": """
        CREATE TABLE IF NOT EXISTS order_items (
          id VARCHAR(64) PRIMARY KEY,
          order_id VARCHAR(64) NOT NULL,
          product_id VARCHAR(64) NOT NULL,
          product_name VARCHAR(500) NOT NULL,
          quantity INT NOT NULL,
          price DECIMAL(10, 2) NOT NULL,
          selected_size_name VARCHAR(100),
          position INT NOT NULL DEFAULT 0,
          created_at DATETIME(6) NOT NULL,
          FOREIGN KEY (order_id) REFERENCES orders(id) ON DELETE CASCADE
        )
    """,
    "contact_messages": """
        CREATE TABLE IF NOT EXISTS contact_messages (
          id VARCHAR(64) PRIMARY KEY,
          name VARCHAR(255) NOT NULL,
          email VARCHAR(255) NOT NULL,
          phone VARCHAR(50),
          message TEXT NOT NULL,
          is_read BOOLEAN NOT NULL DEFAULT 0,
          created_at DATETIME(6) NOT NULL
        )
    """,
    "promotional_banners": """
        CREATE TABLE IF NOT EXISTS promotional_banners (
          id VARCHAR(64) PRIMARY KEY,
          image VARCHAR(500),
          title VARCHAR(500),
          link VARCHAR(500),
          is_active BOOLEAN NOT NULL DEFAULT 1,
          display_order INT NOT NULL DEFAULT 0,
          created_at DATETIME(6) NOT NULL,
          updated_at DATETIME(6)
        )
    """,
    "social_media_posts": """
        CREATE TABLE IF NOT EXISTS social_media_posts (
          id VARCHAR(64) PRIMARY KEY,
          thumbnail VARCHAR(500),
          title VARCHAR(500),
          link VARCHAR(500),
          video_link VARCHAR(500),
          platform VARCHAR(20),
          is_active BOOLEAN NOT NULL DEFAULT 1,
          display_order INT NOT NULL DEFAULT 0,
          created_at DATETIME(6) NOT NULL,
          updated_at DATETIME(6)
        )
    """,
}

TABLES = list(SCHEMA.keys())


def init_db() -> None:
    """Create every table that does not exist yet."""
    try:
        with get_engine().begin() as conn:
            for ddl in SCHEMA.values():
                conn.execute(text(ddl))
    except SQLAlchemyError as exc:
        logger.exception(f"DB init failed: {exc}")
        raise DatabaseError("Failed to initialize database", _detail(exc)) from exc
    logger.info(f"DB initialized: {len(SCHEMA)} tables ready")


def list_tables() -> List[str]:
    try:
        return sorted(inspect(get_engine()).get_table_names())
    except SQLAlchemyError as exc:
        raise DatabaseError("Failed to list tables", _detail(exc)) from exc
