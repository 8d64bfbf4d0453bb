from pydantic import BaseModel, ConfigDict


class RetrievalBaseModel(BaseModel):
    model_config = ConfigDict(
        protected_namespaces=(),
        arbitrary_types_allowed=True,
        extra="ignore",
    )
