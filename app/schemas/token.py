# app/schemas/token.py
from pydantic import BaseModel, EmailStr, Field
from typing import Optional

# Claims we read from a verified Firebase ID token; `uid` is the inbox owner id
class FirebaseTokenData(BaseModel):
    uid: str = Field(..., description="Firebase User ID, used as the notification owner id")
    email: Optional[EmailStr] = Field(None, description="User's email address (if available in token)")

    # Decoded tokens carry many more claims; ignore them
    model_config = {"extra": "ignore"}
