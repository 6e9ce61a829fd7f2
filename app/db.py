import urllib.parse

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from app.config import DATABASE_URL

if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set. Add it to your environment or .env file.")

# Ensure proper encoding by parsing and reconstructing the URL
# (sqlite paths are left alone: an empty netloc would be dropped)
if not DATABASE_URL.startswith("sqlite"):
    try:
        DATABASE_URL = urllib.parse.urlunparse(urllib.parse.urlparse(DATABASE_URL))
    except ValueError:
        DATABASE_URL = DATABASE_URL.encode("utf-8", errors="replace").decode("utf-8")

connect_args = {}
if DATABASE_URL.startswith("postgres"):
    connect_args = {"options": "-c timezone=utc"}
elif DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
