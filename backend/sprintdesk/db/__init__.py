"""Database package."""

from sprintdesk.db.base import Base, BaseModel
from sprintdesk.db.session import DBSession, get_db_session

__all__ = ["Base", "BaseModel", "DBSession", "get_db_session"]
