from sqlalchemy import Column, String
from signage.db import Base


class Player(Base):
    __tablename__ = "player"
    id = Column(String(128), primary_key=True)
    name = Column(String, nullable=False)
