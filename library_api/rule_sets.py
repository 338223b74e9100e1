from .config import get_settings
from .models import ADMIN_ROLE_ID, Permission, Role, User, Book
from .validation import (
    FieldRules,
    array_max_size,
    array_min_size,
    array_unique,
    available,
    book_ids_exist,
    book_loanable,
    is_array,
    is_date,
    is_email,
    is_int,
    is_int_array,
    is_string,
    length,
    matches,
    minimum,
    not_in,
    not_in_past,
    required,
    unique,
    valid_return_date,
)


def _max_books_per_loan() -> int:
    return get_settings().max_book_per_loan


PASSWORD_RULES = [
    required("The password must not be empty"),
    length(6, None, "The password must be at least 6 characters long"),
    matches("hasLowercase", r"[a-z]", "The password must contain at least one lowercase letter"),
    matches("hasUppercase", r"[A-Z]", "The password must contain at least one uppercase letter"),
    matches("hasDigit", r"[0-9]", "The password must contain at least one digit"),
    matches("hasSpecialChar", r"[!@#$%^&*(),.?\":{}|<>]", "The password must contain at least one special character"),
]

EMAIL_RULES = [
    required("The email address is required"),
    is_email("Please enter a valid email address"),
]

UNIQUE_EMAIL = unique(User, "email", "This email address is already in use")

FIRSTNAME_RULES = [
    is_string("The firstname must be a string"),
    length(1, 50, "The firstname is required"),
]

LASTNAME_RULES = [
    is_string("The lastname must be a string"),
    length(1, 50, "The lastname is required"),
]

ROLE_IDS_RULES = [
    is_array("The roles must be given as an array"),
    array_min_size(1, "At least one role must be specified"),
    is_int_array("The roles must be role ids"),
    array_unique("The roles must be distinct"),
    available(Role, "id", "One or more of the specified roles do not exist"),
]

PERMISSION_IDS_RULES = [
    is_array("The permissions must be given as an array"),
    array_min_size(1, "At least one permission must be specified"),
    is_int_array("The permissions must be permission ids"),
    array_unique("The permissions must be distinct"),
    available(Permission, "id", "One or more of the specified permissions do not exist"),
]

ROLE_NAME_RULES = [
    required("The name is required"),
    is_string("The name must be a string"),
    unique(Role, "name", "This name is already in use"),
]


LOGIN = {
    "email": FieldRules(EMAIL_RULES),
    "password": FieldRules([
        required("The password must not be empty"),
        is_string("The password must be a string"),
    ]),
}

USER_REGISTER = {
    "email": FieldRules(EMAIL_RULES + [UNIQUE_EMAIL]),
    "firstname": FieldRules(FIRSTNAME_RULES),
    "lastname": FieldRules(LASTNAME_RULES),
    "password": FieldRules(PASSWORD_RULES),
}

# accounts created by an administrator get a generated password
USER_CREATE = {
    "email": FieldRules(EMAIL_RULES + [UNIQUE_EMAIL]),
    "firstname": FieldRules(FIRSTNAME_RULES),
    "lastname": FieldRules(LASTNAME_RULES),
    "roles": FieldRules(
        ROLE_IDS_RULES + [not_in([ADMIN_ROLE_ID], "The admin role cannot be given at creation")],
        optional=True,
    ),
}

USER_UPDATE = {
    "email": FieldRules([is_email("Please enter a valid email address"), UNIQUE_EMAIL]),
    "firstname": FieldRules(FIRSTNAME_RULES),
    "lastname": FieldRules(LASTNAME_RULES),
    "password": FieldRules(PASSWORD_RULES),
}

USER_ROLES_ADD = {
    "roles": FieldRules(ROLE_IDS_RULES),
}

ROLE_CREATE = {
    "name": FieldRules(ROLE_NAME_RULES),
    "permissions": FieldRules(PERMISSION_IDS_RULES),
}

ROLE_UPDATE = {
    "name": FieldRules(ROLE_NAME_RULES),
}

ROLE_PERMISSIONS = {
    "permissions": FieldRules(PERMISSION_IDS_RULES),
}

BOOK_CREATE = {
    "title": FieldRules([
        required("The title is required"),
        is_string("The title must be a string"),
        unique(Book, "title", "This title is already in use"),
    ]),
    "resume": FieldRules([
        required("The resume is required"),
        is_string("The resume must be a string"),
    ]),
    "isbn": FieldRules([
        required("The ISBN is required"),
        is_string("The ISBN must be a string"),
        unique(Book, "isbn", "This ISBN is already in use"),
    ]),
    "quantity": FieldRules(
        [is_int("The quantity must be an integer"), minimum(0, "The quantity must not be negative")],
        optional=True,
    ),
}

BOOK_UPDATE = {
    "title": FieldRules([
        is_string("The title must be a string"),
        unique(Book, "title", "This title is already in use"),
    ]),
    "resume": FieldRules([is_string("The resume must be a string")]),
    "isbn": FieldRules([
        is_string("The ISBN must be a string"),
        unique(Book, "isbn", "This ISBN is already in use"),
    ]),
    "quantity": FieldRules([
        is_int("The quantity must be an integer"),
        minimum(0, "The quantity must not be negative"),
    ]),
}

BOOK_REJECT = {
    "message": FieldRules([
        required("A rejection message is required"),
        is_string("The message must be a string"),
    ]),
}

BOOK_LOAN = {
    "books": FieldRules([
        is_array("The books must be given as an array"),
        array_min_size(1, "At least one book must be specified"),
        array_max_size(_max_books_per_loan, "Too many books for a single loan"),
        is_int_array("The books must be book ids"),
        array_unique("The books must be distinct"),
        book_ids_exist("One or more of the specified books do not exist"),
        book_loanable("Some books are not available for loan"),
    ]),
    "loanAt": FieldRules([
        required("The loan date is required"),
        is_date("The loan date must be a valid date"),
        not_in_past("The loan date must not be in the past"),
    ]),
    "supposedReturnAt": FieldRules([
        required("The expected return date is required"),
        is_date("The expected return date must be a valid date"),
        valid_return_date("loanAt", "The return date must be after the loan date"),
    ]),
}
