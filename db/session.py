from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine

from core.config import DATABASE_URL

# Connects app to the shift database (SQLite file by default, any SQLAlchemy URL works)

IN_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def build_engine(url: str = DATABASE_URL, echo: bool = False):
    connect_args = {}
    kwargs = {}
    if url.startswith("sqlite"):
        # FastAPI serves sync routes from a threadpool
        connect_args["check_same_thread"] = False
        if url in IN_MEMORY_URLS:
            # One shared connection, otherwise every checkout sees an empty database
            kwargs["poolclass"] = StaticPool
    return create_engine(url, echo=echo, connect_args=connect_args, **kwargs)


# The Wire / Link That Lets Us Pass Data from App -> db
# Note: echo=True will log all SQL statements, set to False in production
engine = build_engine()
