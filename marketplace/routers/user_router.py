from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from .. import schemas, crud, auth
from ..database import get_db
from ..limits import login_limit, password_recovery_limit

router = APIRouter(prefix="/users", tags=["Users"])


@router.post("/register", response_model=schemas.Envelope[schemas.UserRead], status_code=status.HTTP_201_CREATED)
def register(user: schemas.UserRegister, db: Session = Depends(get_db)):
    db_user = crud.create_user(db, user)
    return schemas.Envelope(message="User registered successfully", data=schemas.UserRead.model_validate(db_user))


@router.post("/login", response_model=schemas.Envelope[schemas.Token], dependencies=[Depends(login_limit)])
def login(credentials: schemas.LoginRequest, db: Session = Depends(get_db)):
    db_user = crud.authenticate_user(db, credentials.email, credentials.password)
    return schemas.Envelope(
        message="Login successful",
        data=schemas.Token(access_token=auth.create_access_token(db_user)),
    )


@router.post(
    "/password-recovery",
    response_model=schemas.Envelope[None],
    dependencies=[Depends(password_recovery_limit)],
)
def password_recovery(body: schemas.PasswordRecoveryRequest, db: Session = Depends(get_db)):
    crud.start_password_recovery(db, body.email)
    return schemas.Envelope(message="Password recovery email sent")


@router.post("/reset-password", response_model=schemas.Envelope[None])
def reset_password(body: schemas.ResetPasswordRequest, db: Session = Depends(get_db)):
    crud.reset_password(db, token=body.token, new_password=body.new_password)
    return schemas.Envelope(message="Password reset successful")


@router.post("/verify-email", response_model=schemas.Envelope[None])
def verify_email(body: schemas.VerifyEmailRequest, db: Session = Depends(get_db)):
    crud.verify_email(db, body.token)
    return schemas.Envelope(message="Email verified successfully")
