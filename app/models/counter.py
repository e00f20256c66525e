from sqlalchemy import Column, Integer, String
from app.database import Base

class Counter(Base):
    __tablename__ = "counters"

    name = Column(String, primary_key=True)
    seq = Column(Integer, default=0, nullable=False)
