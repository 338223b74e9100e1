import logging
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Query, status
from sqlalchemy.orm import Session

from .authorization import check_permissions
from .config import Settings, get_settings
from .database import get_db, paginate
from .errors import NotFoundError
from .hashing import generate_password
from .mailer import EmailSender, get_mailer
from .models import READER_ROLE_ID, Book, Loan, Role, User, user_roles
from .rule_sets import USER_CREATE, USER_ROLES_ADD, USER_UPDATE
from .schemas import Message, UserRead
from .validation import ValidationContext, require_any_field, validate_or_raise


logger = logging.getLogger(__name__)

user_router = APIRouter(prefix="/api/users", tags=["users"], dependencies=[Depends(check_permissions)])

UPDATABLE_FIELDS = ("email", "firstname", "lastname", "password")


def get_user_or_404(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


@user_router.get("", response_model=List[UserRead])  # get all the users
def get_users(
    page: Optional[str] = Query(None),
    perpage: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    return paginate(db.query(User).order_by(User.id), page, perpage).all()


@user_router.get("/{user_id}", response_model=UserRead)
def get_user(user_id: int, db: Session = Depends(get_db)):
    return get_user_or_404(db, user_id)


@user_router.post("", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def create_user(
    background_tasks: BackgroundTasks,
    payload: dict = Body({}),
    db: Session = Depends(get_db),
    mailer: EmailSender = Depends(get_mailer),
):
    """
    Create an account on behalf of someone.

    A password is generated, stored hashed and mailed to the new user. Users
    created without roles get the reader role.
    """
    validate_or_raise(USER_CREATE, payload, ValidationContext(db))

    password = generate_password()
    user = User(firstname=payload["firstname"], lastname=payload["lastname"], email=payload["email"])
    user.set_password(password)
    role_ids = payload.get("roles") or [READER_ROLE_ID]
    user.roles = db.query(Role).filter(Role.id.in_(role_ids)).all()
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Created user %s", user.id)

    background_tasks.add_task(
        mailer.send,
        user.email,
        "Your Stone Library account",
        f"Your login credentials are:\n email: {user.email}\n password: {password}",
    )
    return user


@user_router.post("/{user_id}/roles", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def add_roles(user_id: int, payload: dict = Body({}), db: Session = Depends(get_db)):
    validate_or_raise(USER_ROLES_ADD, payload, ValidationContext(db))
    user = get_user_or_404(db, user_id)

    # roles the user already holds are left untouched
    held = set(user.role_ids)
    for role in db.query(Role).filter(Role.id.in_(payload["roles"])).all():
        if role.id not in held:
            user.roles.append(role)
    db.commit()
    db.refresh(user)
    return user


@user_router.put("/{user_id}", response_model=UserRead)
def update_user(user_id: int, payload: dict = Body({}), db: Session = Depends(get_db)):
    require_any_field(payload, UPDATABLE_FIELDS)
    validate_or_raise(USER_UPDATE, payload, ValidationContext(db, instance_id=user_id), partial=True)
    user = get_user_or_404(db, user_id)

    for field in ("email", "firstname", "lastname"):
        value = payload.get(field)
        if value is not None and value != "":
            setattr(user, field, value)
    if payload.get("password"):
        user.set_password(payload["password"])

    db.commit()
    db.refresh(user)
    return user


@user_router.delete("/{user_id}", response_model=Message)
def delete_user(user_id: int, db: Session = Depends(get_db), settings: Settings = Depends(get_settings)):
    """
    Delete a user with its role links, its loans and the books it authored.

    Everything goes in one transaction. The bootstrap admin account is
    reported as not found.
    """
    user = db.get(User, user_id)
    if user is None or user.email == settings.admin_email:
        raise NotFoundError("User not found")

    name = f"{user.lastname} {user.firstname}"
    book_ids = [book_id for (book_id,) in db.query(Book.id).filter(Book.author_id == user_id)]
    try:
        db.execute(user_roles.delete().where(user_roles.c.user_id == user_id))
        db.query(Loan).filter(Loan.user_id == user_id).delete(synchronize_session=False)
        if book_ids:
            db.query(Loan).filter(Loan.book_id.in_(book_ids)).delete(synchronize_session=False)
            db.query(Book).filter(Book.id.in_(book_ids)).delete(synchronize_session=False)
        db.query(User).filter(User.id == user_id).delete(synchronize_session=False)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Deleted user %s", user_id)
    return {"message": f"The user '{name}' has been deleted"}
