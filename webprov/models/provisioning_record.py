from sqlalchemy import Column, Integer, String, DateTime, func
from webprov.db import Base


class ProvisioningRecord(Base):
    __tablename__ = "provisioning_records"
    id = Column(Integer, primary_key=True, autoincrement=True)
    owner = Column(String(32), unique=True, nullable=False)  # sanitized owner identity
    project_name = Column(String(64), nullable=False)
    project_id = Column(String(128), nullable=False)
    chat_id = Column(String(128), nullable=True)
    deployment_id = Column(String(128), nullable=True)
    custom_domain = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
