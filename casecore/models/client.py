"""
Client model definitions
"""

from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, JSON
from sqlalchemy.orm import relationship

from casecore.core.database import Base
from casecore.core.identifiers import format_client_id
from casecore.core.timeutils import utcnow

class Client(Base):
    """Client retained by the firm, keyed by an allocated 4-digit identifier"""
    __tablename__ = "clients"

    client_id = Column(Integer, primary_key=True, autoincrement=False)

    # Basic information
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False)

    # Natural key; uniqueness is enforced through national_id_registry
    national_id = Column(String(10), nullable=False, index=True)
    phone_numbers = Column(JSON, nullable=False, default=list)

    # Opaque to the core, hashing happens in the auth layer
    credential_hash = Column(String(255))

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    # Relationships
    cases = relationship("Case", back_populates="client")
    registry_entry = relationship("IdentifierRegistryEntry", back_populates="client", uselist=False)

    @property
    def display_id(self) -> str:
        return format_client_id(self.client_id)

    @property
    def has_credential(self) -> bool:
        return self.credential_hash is not None

    def __repr__(self):
        return f"<Client(client_id={self.client_id}, name='{self.first_name} {self.last_name}')>"

class IdentifierRegistryEntry(Base):
    """Global uniqueness index from national ID to allocated client identifier"""
    __tablename__ = "national_id_registry"

    national_id = Column(String(10), primary_key=True)
    client_id = Column(Integer, ForeignKey("clients.client_id"), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    client = relationship("Client", back_populates="registry_entry")

    def __repr__(self):
        return f"<IdentifierRegistryEntry(national_id='{self.national_id}', client_id={self.client_id})>"
