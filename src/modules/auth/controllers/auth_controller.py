from datetime import timedelta
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List
from config import get_settings
from database import get_db
from modules.auth.dependencies import get_current_admin
from modules.auth.models.admin_user import AdminUser
from modules.auth.services.auth_service import AuthService
from modules.auth.schemas.auth_schemas import LoginRequest, TokenResponse, AdminCreate, AdminResponse
from modules.common.errors import AuthError, ValidationError

router = APIRouter(prefix="/auth", tags=["authentication"])

@router.post("/login", response_model=TokenResponse)
def login(login_data: LoginRequest, db: Session = Depends(get_db)):
    """Login del panel de administración"""
    admin = AuthService.authenticate_admin(db, login_data.email, login_data.password)
    if not admin:
        raise AuthError("Incorrect email or password")

    access_token_expires = timedelta(minutes=get_settings().ACCESS_TOKEN_EXPIRE_MINUTES)
    access_token = AuthService.create_access_token(
        data={"sub": admin.email}, expires_delta=access_token_expires
    )

    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        admin_id=admin.id,
        admin_name=admin.name,
    )

@router.post("/admins", response_model=AdminResponse, status_code=status.HTTP_201_CREATED)
def register_admin(
    admin_data: AdminCreate,
    db: Session = Depends(get_db),
    current_admin: AdminUser = Depends(get_current_admin)
):
    """Registro de administradores (solo otro administrador)"""
    if db.query(AdminUser).filter(AdminUser.email == admin_data.email).first():
        raise ValidationError("Email is already registered")

    new_admin = AdminUser(
        name=admin_data.name,
        email=admin_data.email,
        password_hash=AuthService.get_password_hash(admin_data.password),
        is_active=True
    )
    db.add(new_admin)
    db.commit()
    db.refresh(new_admin)
    return new_admin

@router.get("/admins", response_model=List[AdminResponse])
def list_admins(
    db: Session = Depends(get_db),
    current_admin: AdminUser = Depends(get_current_admin)
):
    return db.query(AdminUser).order_by(AdminUser.id).all()

@router.get("/me", response_model=AdminResponse)
def get_current_admin_info(current_admin: AdminUser = Depends(get_current_admin)):
    """Obtener información del admin actual"""
    return current_admin
