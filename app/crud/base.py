from typing import Any, Dict, Generic, List, Optional, Type, TypeVar, Union
from pydantic import BaseModel
from sqlalchemy.orm import Session
from app.core.database import Base

ModelType = TypeVar("ModelType", bound=Base)
CreateSchemaType = TypeVar("CreateSchemaType", bound=BaseModel)
UpdateSchemaType = TypeVar("UpdateSchemaType", bound=BaseModel)

class CRUDBase(Generic[ModelType, CreateSchemaType, UpdateSchemaType]):
    def __init__(self, model: Type[ModelType]):
        self.model = model

    def _to_model_kwargs(self, obj_in: Union[CreateSchemaType, Dict[str, Any]]) -> Dict[str, Any]:
        if isinstance(obj_in, BaseModel):
            return obj_in.model_dump(mode="json")
        return dict(obj_in)

    def get(self, db: Session, id: Any) -> Optional[ModelType]:
        return db.query(self.model).filter(self.model.id == id).first()

    def create(self, db: Session, *, obj_in: Union[CreateSchemaType, Dict[str, Any]], commit: bool = True) -> ModelType:
        db_obj = self.model(**self._to_model_kwargs(obj_in))
        db.add(db_obj)
        db.flush() # Populate ID
        db.refresh(db_obj) # Refresh to get ID and other defaults
        if commit:
            db.commit()
        return db_obj

    def create_many(
        self, db: Session, *, objs_in: List[Union[CreateSchemaType, Dict[str, Any]]], commit: bool = True
    ) -> List[ModelType]:
        db_objs = [self.model(**self._to_model_kwargs(obj_in)) for obj_in in objs_in]
        db.add_all(db_objs)
        db.flush()
        if commit:
            db.commit()
        return db_objs
