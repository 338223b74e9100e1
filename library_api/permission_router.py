from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .authorization import check_permissions
from .database import get_db, paginate
from .errors import NotFoundError
from .models import Permission
from .schemas import PermissionRead


permission_router = APIRouter(
    prefix="/api/permissions", tags=["permissions"], dependencies=[Depends(check_permissions)]
)


@permission_router.get("", response_model=List[PermissionRead])  # read-only catalog
def get_permissions(
    page: Optional[str] = Query(None),
    perpage: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    return paginate(db.query(Permission).order_by(Permission.id), page, perpage).all()


@permission_router.get("/{permission_id}", response_model=PermissionRead)
def get_permission(permission_id: int, db: Session = Depends(get_db)):
    permission = db.get(Permission, permission_id)
    if permission is None:
        raise NotFoundError("Permission not found")
    return permission
