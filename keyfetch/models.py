"""
Encryption key data models.
"""

from enum import IntEnum
from typing import List
from pydantic import BaseModel, Field, model_validator


class KeyType(IntEnum):
    """Kind of key served by the key server."""
    ENCRYPTION = 0


class EncryptionKey(BaseModel):
    """Public encryption key fetched from the key server, with its validity window."""
    key_identifier: str = Field(alias="keyIdentifier")
    public_key: str = Field(alias="publicKey")
    key_type: KeyType = Field(default=KeyType.ENCRYPTION, alias="keyType")
    creation_time: int = Field(alias="creationTime")  # epoch millis
    expiry_time: int = Field(alias="expiryTime")  # epoch millis

    class Config:
        populate_by_name = True
        frozen = True

    @model_validator(mode="after")
    def check_validity_window(self):
        if self.expiry_time <= self.creation_time:
            raise ValueError("expiry_time must be after creation_time")
        return self


class FetchedKey(BaseModel):
    """One entry of the key server's response."""
    id: str
    key: str


class KeyFetchResponse(BaseModel):
    """Key server response: {"keys": [{"id": ..., "key": ...}, ...]}."""
    keys: List[FetchedKey]
