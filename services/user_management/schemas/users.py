from pydantic import BaseModel, EmailStr
from typing import List, Optional

class SchoolUserLoginRequest(BaseModel):
    email: EmailStr
    password: str

class SchoolUserLoginResponse(BaseModel):
    name: str
    school_id: Optional[str] = None
    roles: List[str]
    access_token: str
    token_type: str = "bearer"
