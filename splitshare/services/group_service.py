import logging
from sqlalchemy.orm import Session
from sqlalchemy import and_
from typing import List, Optional, Set
from splitshare.core.errors import AuthorizationError, NotFoundError, ValidationError
from splitshare.models.groups import Group, GroupMember, MemberRole
from splitshare.models.users import User
from splitshare.schemas.group_schema import GroupCreate, GroupMemberCreate

logger = logging.getLogger(__name__)


def create_group(db: Session, group_data: GroupCreate, created_by: str) -> Group:
    """Create a new group; the creator joins as admin"""
    group = Group(
        name=group_data.name,
        description=group_data.description,
        created_by=created_by
    )
    db.add(group)
    db.flush()

    db.add(GroupMember(group_id=group.id, user_id=created_by, role=MemberRole.admin))
    db.commit()
    db.refresh(group)
    logger.info(f"Group {group.id} created by {created_by}")
    return group


def get_group(db: Session, group_id: str) -> Optional[Group]:
    """Get a group by ID"""
    return db.query(Group).filter(Group.id == group_id).first()


def get_membership(db: Session, group_id: str, user_id: str) -> Optional[GroupMember]:
    return db.query(GroupMember).filter(
        and_(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
    ).first()


def add_member_to_group(db: Session, group_id: str, user_id: str, role: MemberRole = MemberRole.member) -> GroupMember:
    """Add a member to a group"""
    if get_membership(db, group_id, user_id):
        raise ValidationError("User is already a member of this group")

    member = GroupMember(group_id=group_id, user_id=user_id, role=role)
    db.add(member)
    db.commit()
    db.refresh(member)
    return member


def add_member_as_admin(db: Session, group_id: str, member_data: GroupMemberCreate, admin_user_id: str) -> GroupMember:
    """Add a member on behalf of a group admin"""
    group = get_group(db, group_id)
    if not group:
        raise NotFoundError("Group not found")

    if not is_group_admin(db, group_id, admin_user_id):
        raise AuthorizationError("Only group admins can add members")

    if not db.query(User).filter(User.id == member_data.user_id).first():
        raise NotFoundError("User not found")

    member = add_member_to_group(db, group_id, member_data.user_id, member_data.role)
    logger.info(f"User {member_data.user_id} added to group {group_id} by {admin_user_id}")
    return member


def is_group_creator(db: Session, group_id: str, user_id: str) -> bool:
    group = get_group(db, group_id)
    return group is not None and group.created_by == user_id


def is_group_admin(db: Session, group_id: str, user_id: str) -> bool:
    """Check if user is admin of the group; the creator always is"""
    if is_group_creator(db, group_id, user_id):
        return True
    member = get_membership(db, group_id, user_id)
    return member is not None and member.role == MemberRole.admin


def is_group_member(db: Session, group_id: str, user_id: str) -> bool:
    """Check if user is member of the group; the creator always is"""
    if is_group_creator(db, group_id, user_id):
        return True
    return get_membership(db, group_id, user_id) is not None


def get_group_members(db: Session, group_id: str) -> List[GroupMember]:
    """Get all members of a group"""
    return db.query(GroupMember).filter(GroupMember.group_id == group_id).all()


def get_group_member_ids(db: Session, group_id: str) -> Set[str]:
    """Member user ids including the group creator"""
    member_ids = {member.user_id for member in get_group_members(db, group_id)}
    group = get_group(db, group_id)
    if group:
        member_ids.add(group.created_by)
    return member_ids


def get_existing_user_ids(db: Session, user_ids: List[str]) -> Set[str]:
    if not user_ids:
        return set()
    rows = db.query(User.id).filter(User.id.in_(user_ids)).all()
    return {row[0] for row in rows}
