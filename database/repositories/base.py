from sqlalchemy.orm import Session


class BaseRepository:
    """Repositories share the unit of work's session; the unit of work commits or rolls back."""

    def __init__(self, db: Session):
        self.db = db
