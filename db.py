# db.py
import os
from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

load_dotenv()

DB_URL = os.getenv("DB_URL", "sqlite:///tank_gauging.db")


def make_engine(url: str = DB_URL):
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, echo=False, future=True, connect_args=connect_args)


engine = make_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

# Import AFTER engine so models bind to this MetaData one time
from models import Base  # noqa: E402


def get_session():
    return SessionLocal()


def init_db(bind=None):
    Base.metadata.create_all(bind=bind or engine)
