import logging
import re
from typing import Iterable, List, Sequence

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from .database import get_db
from .errors import AuthorizationError
from .models import Permission, role_permissions
from .schemas import Principal
from .security import get_current_principal


logger = logging.getLogger(__name__)


def permissions_for_roles(db: Session, role_ids: Iterable[int]) -> List[Permission]:
    """Permissions attached to any of ``role_ids``, one per permission name."""
    role_ids = list(role_ids)
    if not role_ids:
        return []
    rows = (
        db.query(Permission)
        .join(role_permissions, role_permissions.c.permission_id == Permission.id)
        .filter(role_permissions.c.role_id.in_(role_ids))
        .order_by(Permission.id)
        .all()
    )
    by_name = {}
    for permission in rows:
        by_name.setdefault(permission.name, permission)
    return list(by_name.values())


def url_matches(pattern: str, path: str) -> bool:
    try:
        return re.search(pattern, path) is not None
    except re.error:
        logger.warning("Ignoring permission with invalid url pattern %r", pattern)
        return False


def is_route_allowed(method: str, path: str, permissions: Sequence[Permission]) -> bool:
    """Any single permission with the same method and a matching url grants access."""
    method = method.upper()
    return any(
        permission.method.upper() == method and url_matches(permission.url, path)
        for permission in permissions
    )


def check_permissions(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> Principal:
    method, path = request.method, request.url.path
    logger.debug("Received %s request to %s from user %s", method, path, principal.id)
    permissions = permissions_for_roles(db, principal.roles)
    if not is_route_allowed(method, path, permissions):
        logger.info("Denied %s %s to user %s", method, path, principal.id)
        raise AuthorizationError()
    return principal
