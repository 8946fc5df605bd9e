from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from splitshare.api.deps import get_current_user_id
from splitshare.db.database import get_db
from splitshare.schemas.group_schema import GroupCreate, GroupMemberCreate, GroupMemberOut, GroupOut
from splitshare.services.group_service import add_member_as_admin, create_group

router = APIRouter(prefix="/groups", tags=["groups"])


@router.post("", response_model=GroupOut, status_code=201)
def create_new_group(
    group_data: GroupCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Create a new group, the creator becomes its admin"""
    return create_group(db, group_data, user_id)


@router.post("/{group_id}/members", response_model=GroupMemberOut, status_code=201)
def add_group_member(
    group_id: str,
    member_data: GroupMemberCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Add a member to a group (admin only)"""
    return add_member_as_admin(db, group_id, member_data, user_id)
