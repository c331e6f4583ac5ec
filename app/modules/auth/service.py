from datetime import datetime, timezone
from fastapi import HTTPException, status
from sqlalchemy.orm import Session
import logging

from app.modules.auth.models import User
from app.modules.auth.schemas import UserCreate, UserOut, TokenResponse
from app.modules.auth.utils import hash_password, verify_password, create_access_token

logger = logging.getLogger(__name__)


class AuthService:
    """
    Staff accounts and token issuance.
    """

    def __init__(self, db: Session):
        self.db = db

    def create_user(self, user_data: UserCreate) -> User:
        existing_user = self.db.query(User).filter(User.email == user_data.email).first()
        if existing_user:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="A user with this email already exists"
            )

        user = User(
            email=user_data.email,
            password=hash_password(user_data.password),
            full_name=user_data.full_name,
            role=user_data.role.value,
            is_active=True
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        logger.info(f"Created user {user.email} with role {user.role}")
        return user

    def login(self, email: str, password: str) -> TokenResponse:
        user = self.db.query(User).filter(User.email == email).first()

        if not user or not verify_password(password, user.password):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Incorrect email or password"
            )

        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Account is inactive"
            )

        user.last_login = datetime.now(timezone.utc)
        self.db.commit()
        self.db.refresh(user)

        token = create_access_token({"sub": str(user.id), "email": user.email, "role": user.role})
        return TokenResponse(access_token=token, user=UserOut.model_validate(user))

    def ensure_admin(self, email: str, password: str, full_name: str = "Administrator") -> User:
        """
        Return the admin account for this email, creating it if missing.
        Used to bootstrap a fresh database.
        """
        user = self.db.query(User).filter(User.email == email).first()
        if user:
            if user.role != "admin":
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail=f"{email} exists with role {user.role}"
                )
            return user
        return self.create_user(UserCreate(
            email=email, password=password, full_name=full_name, role="admin"
        ))
