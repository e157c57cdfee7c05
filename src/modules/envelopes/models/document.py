from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from database import Base

class Document(Base):
    __tablename__ = 'documents'

    id = Column(Integer, primary_key=True)
    recipient_id = Column(Integer, ForeignKey('recipients.id', ondelete='CASCADE'), nullable=False, index=True)
    filename = Column(String, nullable=False)
    storage_url = Column(String, nullable=False)
    # Both NULL for standalone uploads stored without encryption
    encryption_iv = Column(String(32), nullable=True)
    encryption_auth_tag = Column(String(32), nullable=True)
    content_type = Column(String, nullable=False, default="application/pdf")
    file_size = Column(Integer, nullable=False)
    uploaded_at = Column(DateTime, default=datetime.utcnow)

    recipient = relationship("Recipient", back_populates="documents")

    @property
    def is_encrypted(self) -> bool:
        return self.encryption_iv is not None and self.encryption_auth_tag is not None
