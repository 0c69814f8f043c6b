import os
from contextlib import contextmanager
from typing import Generator

from loguru import logger
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
    event,
    func,
)
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

# Create base class for all models
Base = declarative_base()

_engine_instance = None
_engine_url = None


class User(Base):
    """Credential record for a guardian or a child"""
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    role = Column(String(20), nullable=False, index=True)  # guardian, child
    pin_hash = Column(String(255), nullable=False)  # bcrypt, never plaintext
    locale = Column(String(10), default='en-UK')
    locked_until = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    guardian = relationship("Guardian", back_populates="user", uselist=False)
    child = relationship("Child", back_populates="user", uselist=False)
    sessions = relationship("AuthSession", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(id={self.id}, role={self.role}, locked_until={self.locked_until})>"


class Guardian(Base):
    """Guardian profile"""
    __tablename__ = 'guardians'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    created_at = Column(DateTime, default=func.now())

    user = relationship("User", back_populates="guardian")


class Child(Base):
    """Child profile"""
    __tablename__ = 'children'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=func.now())

    user = relationship("User", back_populates="child")
    guest_sessions = relationship("GuestSession", back_populates="child")


class AuthSession(Base):
    """Login session; the token is the lookup key"""
    __tablename__ = 'sessions'

    token = Column(String(64), primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)

    user = relationship("User", back_populates="sessions")

    def __repr__(self):
        return f"<AuthSession(token={self.token[:8]}..., user_id={self.user_id}, expires_at={self.expires_at})>"


class RateLimit(Base):
    """Fixed-window request counter per (ip, endpoint, window_start)"""
    __tablename__ = 'rate_limits'
    __table_args__ = (
        UniqueConstraint('ip_address', 'endpoint', 'window_start', name='uq_rate_limit_window'),
    )

    id = Column(Integer, primary_key=True)
    ip_address = Column(String(45), nullable=False)  # IPv6 max length
    endpoint = Column(String(200), nullable=False)
    window_start = Column(Integer, nullable=False, index=True)  # epoch seconds
    request_count = Column(Integer, default=1, nullable=False)


class GuestSession(Base):
    """Read-only report access token for clinicians"""
    __tablename__ = 'guest_sessions'

    id = Column(Integer, primary_key=True)
    token = Column(String(64), unique=True, nullable=False, index=True)
    child_id = Column(Integer, ForeignKey('children.id'), nullable=False)
    created_by = Column(Integer, ForeignKey('users.id'), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    revoked_at = Column(DateTime(timezone=True), nullable=True)

    child = relationship("Child", back_populates="guest_sessions")


# Import audit models after Base is created to avoid circular imports
# These models use the same Base and will be included in create_all()
try:
    from src.comecome_app.models.audit_log import AuditLog, FailedPinAttempt  # noqa: E402,F401
except ImportError:
    # audit_log is being imported first; it registers itself on Base
    pass


def get_database_path() -> str:
    """Get the path to the SQLite database file"""
    from src import config
    config.DATA_DIR.mkdir(parents=True, exist_ok=True)
    return str(config.DATABASE_PATH)


def _set_sqlite_pragmas(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def create_engine_instance():
    """Create SQLAlchemy engine instance"""
    global _engine_instance, _engine_url
    database_url = os.environ.get("DATABASE_URL", "").strip()
    if database_url:
        target_url = database_url
    else:
        db_path = get_database_path()
        target_url = f"sqlite:///{db_path}"

    if _engine_instance is not None and _engine_url == target_url:
        return _engine_instance

    logger.info(f"Creating database engine: {target_url}")
    connect_args = {"check_same_thread": False} if target_url.startswith("sqlite") else {}
    engine_kwargs = {}
    if target_url in {"sqlite:///:memory:", "sqlite://"}:
        # Keep one shared in-memory DB connection for tests.
        engine_kwargs["poolclass"] = StaticPool

    engine = create_engine(
        target_url,
        echo=False,
        connect_args=connect_args,
        **engine_kwargs,
    )
    if target_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)

    _engine_instance = engine
    _engine_url = target_url

    return engine


def create_session_factory():
    """Create session factory"""
    engine = create_engine_instance()
    return sessionmaker(bind=engine, expire_on_commit=False)


def create_tables():
    """Create all database tables"""
    engine = create_engine_instance()
    logger.info("Creating database tables...")
    Base.metadata.create_all(engine)
    logger.info("Database tables created successfully")


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Get database session (context manager)"""
    SessionLocal = create_session_factory()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_database():
    """Initialize the database tables."""
    logger.info("Initializing database...")
    create_tables()
    with get_session() as session:
        if session.query(User).first() is None:
            logger.warning(
                "No users found. Create the first guardian with "
                "`python -m src.scripts.create_guardian <name> <pin>`."
            )
    logger.info("Database initialized successfully")
