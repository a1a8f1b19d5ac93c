from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ridehail.core.deps import get_db, get_principal
from ridehail.core.security import Principal
from ridehail.domains.notifications.schemas import NotificationOut
from ridehail.domains.notifications.service import list_unread, mark_read


router = APIRouter(prefix="/notifications")


@router.get("/unread", response_model=list[NotificationOut])
def unread(principal: Principal = Depends(get_principal), db: Session = Depends(get_db)) -> list[NotificationOut]:
    return [NotificationOut(**n.to_public_dict()) for n in list_unread(db, user_id=principal.sub)]


@router.post("/{notification_id}/read", response_model=NotificationOut)
def read(
    notification_id: str,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
) -> NotificationOut:
    n = mark_read(db, notification_id=notification_id, user_id=principal.sub)
    return NotificationOut(**n.to_public_dict())
