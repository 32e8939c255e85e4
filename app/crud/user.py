from typing import List, Optional
from sqlalchemy.orm import Session

from app.crud.base import CRUDBase
from app.models.user import User
from app.schemas.user import UserCreate

class CRUDUser(CRUDBase[User, UserCreate, UserCreate]):

    def get_ids(self, db: Session, *, status: Optional[str] = None, role: Optional[str] = None) -> List[str]:
        query = db.query(self.model.id)
        if status is not None:
            query = query.filter(self.model.status == status)
        if role is not None:
            query = query.filter(self.model.role == role)
        return [row.id for row in query.all()]

user = CRUDUser(User)
