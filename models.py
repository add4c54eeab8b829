from datetime import datetime
from sqlalchemy import Column, Integer, String, LargeBinary, DateTime, UniqueConstraint
from sqlalchemy.orm import declarative_base

Base = declarative_base()

class KVEntry(Base):
    __tablename__ = "kv_entries"
    __table_args__ = (UniqueConstraint("namespace", "key", name="uq_kv_namespace_key"),)

    id = Column(Integer, primary_key=True)
    namespace = Column(String(32), nullable=False)    # "scenes" | "settings"
    key = Column(String(128), nullable=False)         # workspace:{owner}:{scene} | workspace:meta:{owner}
    value = Column(LargeBinary, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<KVEntry {self.namespace}/{self.key}>"
