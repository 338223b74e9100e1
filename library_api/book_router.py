import logging
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from .authorization import check_permissions
from .database import get_db, paginate
from .errors import NotFoundError
from .mailer import EmailSender, get_mailer
from .models import ADMIN_ROLE_ID, Book, Loan, utcnow
from .rule_sets import BOOK_CREATE, BOOK_REJECT, BOOK_UPDATE
from .schemas import BookRead, Message, Principal
from .validation import ValidationContext, require_any_field, validate_or_raise


logger = logging.getLogger(__name__)

book_router = APIRouter(prefix="/api/books", tags=["books"])

UPDATABLE_FIELDS = ("title", "isbn", "resume", "quantity")

# status query parameter -> is_valid filter
STATUS_FILTERS = {"pending": False, "validated": True}


def is_privileged(principal: Principal) -> bool:
    return ADMIN_ROLE_ID in principal.roles


def get_book_or_404(db: Session, book_id: int) -> Book:
    book = db.get(Book, book_id)
    if book is None:
        raise NotFoundError("Book not found")
    return book


@book_router.get("", response_model=List[BookRead])  # get all the books
def get_books(
    book_status: Optional[str] = Query(None, alias="status"),
    page: Optional[str] = Query(None),
    perpage: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(check_permissions),
):
    """
    List books, optionally filtered by ``status`` (``pending`` or ``validated``).

    Callers without the admin role only see validated books and their own.
    """
    query = db.query(Book).options(joinedload(Book.author))
    if book_status in STATUS_FILTERS:
        query = query.filter(Book.is_valid.is_(STATUS_FILTERS[book_status]))
    if not is_privileged(principal):
        query = query.filter(or_(Book.is_valid.is_(True), Book.author_id == principal.id))
    return paginate(query.order_by(Book.id), page, perpage).all()


@book_router.get("/mine", response_model=List[BookRead])
def get_my_books(
    page: Optional[str] = Query(None),
    perpage: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(check_permissions),
):
    query = db.query(Book).options(joinedload(Book.author)).filter(Book.author_id == principal.id)
    return paginate(query.order_by(Book.id), page, perpage).all()


@book_router.post("", response_model=BookRead, status_code=status.HTTP_201_CREATED)
def create_book(
    payload: dict = Body({}),
    db: Session = Depends(get_db),
    principal: Principal = Depends(check_permissions),
):
    # new books wait for validation before joining the catalog
    validate_or_raise(BOOK_CREATE, payload, ValidationContext(db))
    book = Book(
        title=payload["title"],
        isbn=payload["isbn"],
        resume=payload["resume"],
        author_id=principal.id,
        is_valid=False,
    )
    if payload.get("quantity") is not None:
        book.quantity = payload["quantity"]
    db.add(book)
    db.commit()
    db.refresh(book)
    logger.info("User %s submitted book %s", principal.id, book.id)
    return book


@book_router.get("/{book_id}", response_model=BookRead)  # get book by id
def get_book(
    book_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(check_permissions),
):
    book = db.get(Book, book_id)
    # pending books are hidden from everyone but their author and admins
    if book is None or not (book.is_valid or book.author_id == principal.id or is_privileged(principal)):
        raise NotFoundError("Book not found")
    return book


@book_router.put("/{book_id}/validate", response_model=BookRead)
def valid_book(book_id: int, db: Session = Depends(get_db), principal: Principal = Depends(check_permissions)):
    """Publish a pending book. An already validated book is reported as not found."""
    book = db.get(Book, book_id)
    if book is None or book.is_valid:
        raise NotFoundError("Book not found")
    book.is_valid = True
    book.published_at = utcnow()
    db.commit()
    db.refresh(book)
    logger.info("User %s validated book %s", principal.id, book.id)
    return book


@book_router.post("/{book_id}/reject", response_model=Message)
def reject_book(
    book_id: int,
    background_tasks: BackgroundTasks,
    payload: dict = Body({}),
    db: Session = Depends(get_db),
    mailer: EmailSender = Depends(get_mailer),
    principal: Principal = Depends(check_permissions),
):
    validate_or_raise(BOOK_REJECT, payload, ValidationContext(db))
    book = get_book_or_404(db, book_id)
    background_tasks.add_task(
        mailer.send,
        book.author.email,
        f"Your book '{book.title}' was not accepted",
        payload["message"],
    )
    logger.info("User %s rejected book %s", principal.id, book.id)
    return {"message": "Message sent to the author"}


@book_router.put("/{book_id}", response_model=BookRead)  # update book by id
def update_book(
    book_id: int,
    payload: dict = Body({}),
    db: Session = Depends(get_db),
    principal: Principal = Depends(check_permissions),
):
    require_any_field(payload, UPDATABLE_FIELDS)
    validate_or_raise(BOOK_UPDATE, payload, ValidationContext(db, instance_id=book_id), partial=True)
    book = get_book_or_404(db, book_id)

    for field in UPDATABLE_FIELDS:
        value = payload.get(field)
        if value is not None and value != "":
            setattr(book, field, value)
    db.commit()
    db.refresh(book)
    return book


@book_router.delete("/{book_id}", response_model=Message)  # delete book by id
def delete_book(book_id: int, db: Session = Depends(get_db), principal: Principal = Depends(check_permissions)):
    book = get_book_or_404(db, book_id)
    title = book.title
    try:
        db.query(Loan).filter(Loan.book_id == book_id).delete(synchronize_session=False)
        db.query(Book).filter(Book.id == book_id).delete(synchronize_session=False)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("User %s deleted book %s", principal.id, book_id)
    return {"message": f"The book '{title}' has been deleted"}
