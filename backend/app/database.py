from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from .config import settings

database_url = settings.resolved_database_url
is_sqlite = database_url.startswith("sqlite")

# check_same_thread=False: required for SQLite used from FastAPI worker threads
engine = create_engine(
    database_url,
    connect_args={"check_same_thread": False} if is_sqlite else {},
)

# Enable foreign keys in SQLite
if is_sqlite:
    @event.listens_for(engine, "connect")
    def enable_sqlite_fk(dbapi_connection, _):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

# SessionLocal: the main way to talk to the database
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)

# FastAPI dependency
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
