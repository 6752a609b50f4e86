# app/models/base.py
from pydantic import BaseModel, ConfigDict


class DocumentModel(BaseModel):
    """
    Base for everything persisted in MongoDB.
    Enum fields are stored as their plain string values and assignments are
    re-validated, so a dumped model is always BSON-encodable.
    """
    model_config = ConfigDict(use_enum_values=True, validate_assignment=True, validate_default=True)

    def to_document(self) -> dict:
        return self.model_dump()
