# ============================================================
# db.py — Engine and per-request sessions
# ============================================================
from sqlmodel import Session, SQLModel, create_engine

from roomdesk.settings import DATABASE_URL


def make_engine(url: str = DATABASE_URL, **kwargs):
    if url.startswith("sqlite"):
        # FastAPI runs sync routes in a threadpool
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True, **kwargs)


engine = make_engine()


def init_db(bind=None):
    SQLModel.metadata.create_all(bind or engine)


# FastAPI dependency: one Session per request, auto-closed
def get_session():
    with Session(engine) as s:
        yield s
