from datetime import datetime, timedelta
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from config import get_settings
from modules.common.errors import ConfigurationError
from modules.auth.models.admin_user import AdminUser

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

class AuthService:

    @staticmethod
    def verify_password(plain_password: str, hashed_password: str) -> bool:
        """Checks a plaintext password against its bcrypt hash"""
        return pwd_context.verify(plain_password, hashed_password)

    @staticmethod
    def get_password_hash(password: str) -> str:
        """Hashes a password with bcrypt"""
        return pwd_context.hash(password)

    @staticmethod
    def _secret_key() -> str:
        secret = get_settings().SECRET_KEY
        if not secret:
            raise ConfigurationError("SECRET_KEY is not configured")
        return secret

    @staticmethod
    def authenticate_admin(db: Session, email: str, password: str) -> Optional[AdminUser]:
        """Authenticates an admin by email and password"""
        admin = db.query(AdminUser).filter(AdminUser.email == email).first()
        if not admin:
            return None
        if not AuthService.verify_password(password, admin.password_hash):
            return None
        if not admin.is_active:
            return None
        return admin

    @staticmethod
    def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
        """Issues a signed JWT"""
        to_encode = data.copy()
        if expires_delta:
            expire = datetime.utcnow() + expires_delta
        else:
            expire = datetime.utcnow() + timedelta(minutes=15)
        to_encode.update({"exp": expire})
        settings = get_settings()
        encoded_jwt = jwt.encode(to_encode, AuthService._secret_key(), algorithm=settings.ALGORITHM)
        return encoded_jwt

    @staticmethod
    def verify_token(token: str) -> Optional[str]:
        """Decodes a JWT and returns the admin email it carries"""
        try:
            payload = jwt.decode(token, AuthService._secret_key(), algorithms=[get_settings().ALGORITHM])
            email: str = payload.get("sub")
            if email is None:
                return None
            return email
        except JWTError:
            return None

    @staticmethod
    def get_current_admin(db: Session, token: str) -> Optional[AdminUser]:
        """Resolves the active admin behind a token"""
        email = AuthService.verify_token(token)
        if email is None:
            return None
        admin = db.query(AdminUser).filter(AdminUser.email == email).first()
        if admin is None or not admin.is_active:
            return None
        return admin

    @staticmethod
    def ensure_bootstrap_admin(db: Session, email: Optional[str], password: Optional[str]) -> Optional[AdminUser]:
        """Creates the first admin from configuration when the table is empty"""
        if db.query(AdminUser).count() > 0:
            return None
        if not email or not password:
            return None
        admin = AdminUser(
            name="Administrator",
            email=email,
            password_hash=AuthService.get_password_hash(password),
            is_active=True,
        )
        db.add(admin)
        db.commit()
        return admin
