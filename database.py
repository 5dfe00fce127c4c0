from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from config import Settings

SQLALCHEMY_DATABASE_URL = Settings.DATABASE_URL

# SQLite needs check_same_thread=False when sessions cross threads (background tasks)
connect_args = {"check_same_thread": False} if SQLALCHEMY_DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
