import logging
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.orm import Session

from .authorization import check_permissions
from .database import get_db, paginate
from .errors import NotFoundError, ReservedRoleError
from .models import RESERVED_ROLE_IDS, Permission, Role, role_permissions, user_roles
from .rule_sets import ROLE_CREATE, ROLE_PERMISSIONS, ROLE_UPDATE
from .schemas import Message, RoleRead
from .validation import ValidationContext, validate_or_raise


logger = logging.getLogger(__name__)

role_router = APIRouter(prefix="/api/roles", tags=["roles"], dependencies=[Depends(check_permissions)])


def get_role_or_404(db: Session, role_id: int) -> Role:
    role = db.get(Role, role_id)
    if role is None:
        raise NotFoundError("Role not found")
    return role


@role_router.get("", response_model=List[RoleRead])
def get_roles(
    page: Optional[str] = Query(None),
    perpage: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    return paginate(db.query(Role).order_by(Role.id), page, perpage).all()


@role_router.get("/{role_id}", response_model=RoleRead)
def get_role(role_id: int, db: Session = Depends(get_db)):
    return get_role_or_404(db, role_id)


@role_router.post("", response_model=RoleRead, status_code=status.HTTP_201_CREATED)
def create_role(payload: dict = Body({}), db: Session = Depends(get_db)):
    validate_or_raise(ROLE_CREATE, payload, ValidationContext(db))
    role = Role(name=payload["name"])
    role.permissions = db.query(Permission).filter(Permission.id.in_(payload["permissions"])).all()
    db.add(role)
    db.commit()
    db.refresh(role)
    logger.info("Created role %s", role.name)
    return role


@role_router.post("/{role_id}/permissions", response_model=RoleRead, status_code=status.HTTP_201_CREATED)
def add_permissions(role_id: int, payload: dict = Body({}), db: Session = Depends(get_db)):
    validate_or_raise(ROLE_PERMISSIONS, payload, ValidationContext(db))
    role = get_role_or_404(db, role_id)

    attached = {permission.id for permission in role.permissions}
    for permission in db.query(Permission).filter(Permission.id.in_(payload["permissions"])).all():
        if permission.id not in attached:
            role.permissions.append(permission)
    db.commit()
    db.refresh(role)
    return role


@role_router.put("/{role_id}/permissions", response_model=RoleRead)
def remove_permissions(role_id: int, payload: dict = Body({}), db: Session = Depends(get_db)):
    # permissions the role does not hold are ignored
    validate_or_raise(ROLE_PERMISSIONS, payload, ValidationContext(db))
    role = get_role_or_404(db, role_id)

    removed = set(payload["permissions"])
    role.permissions = [permission for permission in role.permissions if permission.id not in removed]
    db.commit()
    db.refresh(role)
    return role


@role_router.put("/{role_id}", response_model=RoleRead)
def update_role(role_id: int, payload: dict = Body({}), db: Session = Depends(get_db)):
    validate_or_raise(ROLE_UPDATE, payload, ValidationContext(db, instance_id=role_id))
    role = get_role_or_404(db, role_id)
    role.name = payload["name"]
    db.commit()
    db.refresh(role)
    return role


@role_router.delete("/{role_id}", response_model=Message)
def delete_role(role_id: int, db: Session = Depends(get_db)):
    """Delete a role with its permission and user links, in one transaction. Users are kept."""
    if role_id in RESERVED_ROLE_IDS:
        raise ReservedRoleError()
    role = get_role_or_404(db, role_id)

    name = role.name
    try:
        db.execute(role_permissions.delete().where(role_permissions.c.role_id == role_id))
        db.execute(user_roles.delete().where(user_roles.c.role_id == role_id))
        db.query(Role).filter(Role.id == role_id).delete(synchronize_session=False)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Deleted role %s", name)
    return {"message": f"The role '{name}' has been deleted"}
