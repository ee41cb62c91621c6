# shared/auth.py
from datetime import datetime, timedelta
from jose import JWTError, jwt
from passlib.context import CryptContext
import os
import uuid
from dotenv import load_dotenv
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from services.exam_management.engine.records import Actor

load_dotenv()

SECRET_KEY = os.getenv("SECRET_KEY", "your-secret-key")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password):
    return pwd_context.hash(password)

def create_access_token(data: dict, expires_delta: timedelta = None):
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt

def decode_token(token: str):
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        return payload
    except JWTError:
        return None

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="school/login")

def actor_from_claims(payload: dict) -> Actor:
    user_id = payload.get("user_id")
    roles = payload.get("roles")

    if not user_id or not payload.get("sub") or not isinstance(roles, list):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Token is missing required fields"
        )

    student_id = payload.get("student_id")
    try:
        return Actor.from_tags(
            user_id=uuid.UUID(user_id),
            school_id=payload.get("school_id"),
            tags=roles,
            student_id=uuid.UUID(student_id) if student_id else None,
        )
    except ValueError:
        # Unknown role tag or malformed id
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Token carries an unknown role or malformed id"
        )

def get_current_actor(token: str = Depends(oauth2_scheme)) -> Actor:
    payload = decode_token(token)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return actor_from_claims(payload)
