from typing import List, Optional
from sqlalchemy.orm import Session
from universo.database import models
from universo.repositories.interfaces import IRoleRepository

class SqlalchemyRoleRepository(IRoleRepository):
    def __init__(self, db_session: Session):
        self.db = db_session

    def find_by_name(self, name: str) -> Optional[models.Role]:
        return self.db.query(models.Role).filter(models.Role.name == name).first()

    def list_all(self) -> List[models.Role]:
        return self.db.query(models.Role).order_by(models.Role.id.asc()).all()
