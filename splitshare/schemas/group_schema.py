from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime
from splitshare.models.groups import MemberRole


class GroupBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)


class GroupCreate(GroupBase):
    pass


class GroupOut(GroupBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    created_by: str
    created_at: datetime


class GroupMemberCreate(BaseModel):
    user_id: str
    role: MemberRole = MemberRole.member


class GroupMemberOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    group_id: str
    user_id: str
    role: MemberRole
    joined_at: datetime
