import logging

from sqlalchemy.orm import Session

from .config import Settings
from .models import ADMIN_ROLE_ID, AUTHOR_ROLE_ID, READER_ROLE_ID, Permission, Role, User


logger = logging.getLogger(__name__)


# (id, name, method, url pattern)
DEFAULT_PERMISSIONS = [
    (1, "users.list", "GET", r"^/api/users/?$"),
    (2, "users.show", "GET", r"^/api/users/\d+$"),
    (3, "users.create", "POST", r"^/api/users/?$"),
    (4, "users.roles.add", "POST", r"^/api/users/\d+/roles$"),
    (5, "users.update", "PUT", r"^/api/users/\d+$"),
    (6, "users.delete", "DELETE", r"^/api/users/\d+$"),
    (7, "roles.list", "GET", r"^/api/roles/?$"),
    (8, "roles.show", "GET", r"^/api/roles/\d+$"),
    (9, "roles.create", "POST", r"^/api/roles/?$"),
    (10, "roles.permissions.add", "POST", r"^/api/roles/\d+/permissions$"),
    (11, "roles.update", "PUT", r"^/api/roles/\d+$"),
    (12, "roles.permissions.remove", "PUT", r"^/api/roles/\d+/permissions$"),
    (13, "roles.delete", "DELETE", r"^/api/roles/\d+$"),
    (14, "permissions.list", "GET", r"^/api/permissions/?$"),
    (15, "permissions.show", "GET", r"^/api/permissions/\d+$"),
    (16, "books.list", "GET", r"^/api/books/?$"),
    (17, "books.show", "GET", r"^/api/books/\d+$"),
    (18, "books.mine", "GET", r"^/api/books/mine$"),
    (19, "books.create", "POST", r"^/api/books/?$"),
    (20, "books.update", "PUT", r"^/api/books/\d+$"),
    (21, "books.delete", "DELETE", r"^/api/books/\d+$"),
    (22, "books.validate", "PUT", r"^/api/books/\d+/validate$"),
    (23, "books.reject", "POST", r"^/api/books/\d+/reject$"),
    (24, "books.loan", "POST", r"^/api/books/loan$"),
    (25, "books.return", "PUT", r"^/api/books/return$"),
]

READER_PERMISSIONS = [16, 17, 24, 25]
AUTHOR_PERMISSIONS = READER_PERMISSIONS + [18, 19, 20]

DEFAULT_ROLES = {
    ADMIN_ROLE_ID: ("admin", [permission[0] for permission in DEFAULT_PERMISSIONS]),
    AUTHOR_ROLE_ID: ("author", AUTHOR_PERMISSIONS),
    READER_ROLE_ID: ("reader", READER_PERMISSIONS),
}


def seed_permissions(db: Session) -> None:
    for permission_id, name, method, url in DEFAULT_PERMISSIONS:
        permission = db.get(Permission, permission_id)
        if permission is None:
            db.add(Permission(id=permission_id, name=name, method=method, url=url))
        else:
            permission.name, permission.method, permission.url = name, method, url
    db.flush()


def seed_roles(db: Session) -> None:
    for role_id, (name, permission_ids) in DEFAULT_ROLES.items():
        role = db.get(Role, role_id)
        if role is None:
            role = Role(id=role_id, name=name)
            db.add(role)
        else:
            role.name = name
        attached = {permission.id for permission in role.permissions}
        for permission_id in permission_ids:
            if permission_id not in attached:
                role.permissions.append(db.get(Permission, permission_id))
    db.flush()


def seed_admin(db: Session, settings: Settings) -> User:
    admin = db.query(User).filter(User.email == settings.admin_email).first()
    if admin is None:
        admin = User(
            firstname=settings.admin_firstname,
            lastname=settings.admin_lastname,
            email=settings.admin_email,
        )
        admin.set_password(settings.admin_password)
        db.add(admin)
        logger.info("Created admin account %s", settings.admin_email)
    admin_role = db.get(Role, ADMIN_ROLE_ID)
    if admin_role not in admin.roles:
        admin.roles.append(admin_role)
    db.flush()
    return admin


def seed_defaults(db: Session, settings: Settings) -> None:
    """Create or refresh the default permissions, the reserved roles and the admin account."""
    seed_permissions(db)
    seed_roles(db)
    seed_admin(db, settings)
    db.commit()
