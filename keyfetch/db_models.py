"""
Database models for keyfetch.
"""

from sqlalchemy import Column, Integer, BigInteger, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class EncryptionKeyRow(Base):
    """
    Persisted encryption key.

    One row per key identifier; a newer fetch of the same key replaces it.
    """
    __tablename__ = "encryption_keys"

    # UUID assigned by the key server
    key_identifier = Column(String, primary_key=True)
    # base64 encoded
    public_key = Column(Text, nullable=False)
    key_type = Column(Integer)
    creation_time = Column(BigInteger, nullable=False)
    expiry_time = Column(BigInteger, nullable=False, index=True)
