from pydantic import BaseModel, Field


class PlayerIn(BaseModel):
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)


class PlayerRenameIn(BaseModel):
    name: str = Field(..., min_length=1)


class PlayerOut(BaseModel):
    id: str
    name: str

    class Config:
        from_attributes = True
