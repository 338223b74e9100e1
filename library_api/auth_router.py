from fastapi import APIRouter, Body, Depends, status
from sqlalchemy.orm import Session

from .config import Settings, get_settings
from .database import get_db
from .models import READER_ROLE_ID, Role, User
from .rule_sets import LOGIN, USER_REGISTER
from .schemas import Message, Principal, Token, UserRead
from .security import (
    TokenStore,
    authenticate,
    get_bearer_token,
    get_current_principal,
    get_token_store,
    revoke,
)
from .validation import ValidationContext, validate_or_raise


router = APIRouter(prefix="/api", tags=["auth"])


@router.post('/login', response_model=Token)
def login(
    payload: dict = Body({}),
    db: Session = Depends(get_db),
    store: TokenStore = Depends(get_token_store),
    settings: Settings = Depends(get_settings),
):
    validate_or_raise(LOGIN, payload, ValidationContext(db))
    token = authenticate(db, payload["email"], payload["password"], store, settings)
    return {"token": token}


@router.post('/register', response_model=UserRead, status_code=status.HTTP_201_CREATED)
def register(payload: dict = Body({}), db: Session = Depends(get_db)):
    # self-registration always lands in the reader role
    validate_or_raise(USER_REGISTER, payload, ValidationContext(db))
    user = User(firstname=payload["firstname"], lastname=payload["lastname"], email=payload["email"])
    user.set_password(payload["password"])
    user.roles.append(db.get(Role, READER_ROLE_ID))
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@router.post('/logout', response_model=Message, dependencies=[Depends(get_current_principal)])
def logout(
    token: str = Depends(get_bearer_token),
    store: TokenStore = Depends(get_token_store),
    settings: Settings = Depends(get_settings),
):
    # a revoked token is already refused by get_current_principal
    revoke(token, store, settings)
    return {"message": "Logged out"}


@router.get('/me', response_model=Principal)
def me(principal: Principal = Depends(get_current_principal)):
    return principal
