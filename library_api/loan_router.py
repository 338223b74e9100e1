import logging
from typing import List

from fastapi import APIRouter, BackgroundTasks, Body, Depends, status
from sqlalchemy.orm import Session

from .authorization import check_permissions
from .database import get_db
from .errors import LoanPreconditionError
from .mailer import EmailSender, get_mailer
from .models import Loan, utcnow
from .rule_sets import BOOK_LOAN
from .schemas import BooksReturned, LoanRecorded, Principal
from .validation import ValidationContext, to_naive_utc, validate_or_raise


logger = logging.getLogger(__name__)

loan_router = APIRouter(prefix="/api/books", tags=["loans"])


def has_outstanding_loan(db: Session, user_id: int) -> bool:
    return db.query(Loan.id).filter(Loan.user_id == user_id, Loan.return_at.is_(None)).first() is not None


# loan preconditions, checked after the permission filter and before the handler
# A check, not a lock: two concurrent requests can both pass it.

def require_no_outstanding_loan(
    principal: Principal = Depends(check_permissions),
    db: Session = Depends(get_db),
) -> Principal:
    if has_outstanding_loan(db, principal.id):
        raise LoanPreconditionError("You already have an outstanding loan")
    return principal


def require_outstanding_loan(
    principal: Principal = Depends(check_permissions),
    db: Session = Depends(get_db),
) -> Principal:
    if not has_outstanding_loan(db, principal.id):
        raise LoanPreconditionError("You have no outstanding loan")
    return principal


def loan_books(db: Session, user_id: int, payload: dict) -> List[Loan]:
    """Record one loan per requested book for ``user_id``."""
    validate_or_raise(BOOK_LOAN, payload, ValidationContext(db))
    loan_at = to_naive_utc(payload["loanAt"])
    supposed_return_at = to_naive_utc(payload["supposedReturnAt"])
    loans = [
        Loan(user_id=user_id, book_id=book_id, loan_at=loan_at, supposed_return_at=supposed_return_at)
        for book_id in payload["books"]
    ]
    db.add_all(loans)
    db.commit()
    for loan in loans:
        db.refresh(loan)
    return loans


def return_books(db: Session, user_id: int) -> int:
    """
    Close every outstanding loan of ``user_id``.

    All the books the user holds are returned together. Returns the number
    of loans closed, zero when there was nothing to return.
    """
    returned = (
        db.query(Loan)
        .filter(Loan.user_id == user_id, Loan.return_at.is_(None))
        .update({Loan.return_at: utcnow()}, synchronize_session=False)
    )
    db.commit()
    return returned


@loan_router.post("/loan", response_model=LoanRecorded, status_code=status.HTTP_201_CREATED)
def loan_book(
    background_tasks: BackgroundTasks,
    payload: dict = Body({}),
    db: Session = Depends(get_db),
    mailer: EmailSender = Depends(get_mailer),
    principal: Principal = Depends(require_no_outstanding_loan),
):
    loans = loan_books(db, principal.id, payload)
    logger.info("User %s borrowed books %s", principal.id, [loan.book_id for loan in loans])
    titles = ", ".join(loan.book.title for loan in loans)
    background_tasks.add_task(
        mailer.send,
        principal.email,
        "Your loan is recorded",
        f"You borrowed: {titles}.\nExpected return: {loans[0].supposed_return_at.isoformat()}",
    )
    return {"message": "Your loan is recorded", "loans": loans}


@loan_router.put("/return", response_model=BooksReturned)
def return_book(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    mailer: EmailSender = Depends(get_mailer),
    principal: Principal = Depends(require_outstanding_loan),
):
    returned = return_books(db, principal.id)
    logger.info("User %s returned %s books", principal.id, returned)
    background_tasks.add_task(
        mailer.send,
        principal.email,
        "Your books are returned",
        f"We received {returned} book(s). Thank you!",
    )
    return {"message": "The books have been returned", "returned": returned}
