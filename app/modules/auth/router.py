from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies, get_current_user
from app.modules.auth.models import User
from app.modules.auth.schemas import UserCreate, UserOut, TokenResponse
from app.modules.auth.service import AuthService

auth_router = APIRouter()


@auth_router.post("/login", response_model=TokenResponse)
def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    """
    Log in with email and password. Returns a bearer access token.
    """
    auth_service = AuthService(db)
    return auth_service.login(form_data.username, form_data.password)


@auth_router.get("/me", response_model=UserOut)
def get_current_user_info(current_user: User = Depends(get_current_user)):
    return current_user


@auth_router.post("/users", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create_user(
    user_data: UserCreate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(["admin"]))
):
    """
    Create a staff account. Admins only.
    """
    auth_service = AuthService(db)
    return auth_service.create_user(user_data)
