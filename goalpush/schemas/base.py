from pydantic import BaseModel

class BaseSchema(BaseModel):
    class Config:
        from_attributes = True
        populate_by_name = True

class GatewaySchema(BaseModel):
    """Gateway payloads grow fields over time; unknown keys are kept, not rejected."""

    class Config:
        extra = "allow"
        populate_by_name = True
