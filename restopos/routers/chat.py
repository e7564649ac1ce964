# restopos/routers/chat.py
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from restopos.db import get_db
from restopos.deps import AccountContext, get_hub, require_restaurant
from restopos.errors import AuthorizationError, ValidationFailed
from restopos.models.core import (
    Branch, ChatMessage, Conversation, ConversationMember, ConversationType, User,
)
from restopos.schemas.support import ChannelIn, ChatMessageIn, DirectIn
from restopos.services.notify import Event, EventType, NotificationHub
from restopos.services.tenancy import get_owned
from restopos.util.serialize import row_dict

router = APIRouter(prefix="/chat", tags=["chat"], dependencies=[Depends(require_restaurant)])


def _is_member(db: Session, conversation_id: str, user_id: str, restaurant_id: str) -> bool:
    return db.query(ConversationMember).filter(
        ConversationMember.conversation_id == conversation_id,
        ConversationMember.user_id == user_id,
        ConversationMember.restaurant_id == restaurant_id,
    ).first() is not None

def _member_conversation(db: Session, conversation_id: str, ctx: AccountContext) -> Conversation:
    c = get_owned(db, Conversation, conversation_id, ctx.restaurant_id, "Conversation")
    if not _is_member(db, c.id, ctx.user_id, ctx.restaurant_id):
        raise AuthorizationError("Not a member of this conversation")
    return c

def _add_members(db: Session, hub: NotificationHub, c: Conversation, user_ids: list[str]):
    for uid in user_ids:
        if not _is_member(db, c.id, uid, c.restaurant_id):
            db.add(ConversationMember(restaurant_id=c.restaurant_id, conversation_id=c.id, user_id=uid))
    db.commit()
    # open sockets of the new members start receiving this conversation
    for uid in user_ids:
        hub.join_conversation(c.restaurant_id, uid, c.id)


@router.get("/conversations")
def conversations(branch_id: Optional[str] = None, db: Session = Depends(get_db),
                  ctx: AccountContext = Depends(require_restaurant)):
    q = (db.query(Conversation)
           .join(ConversationMember, ConversationMember.conversation_id == Conversation.id)
           .filter(Conversation.restaurant_id == ctx.restaurant_id,
                   ConversationMember.user_id == ctx.user_id))
    if branch_id:
        q = q.filter((Conversation.branch_id == branch_id) | (Conversation.branch_id.is_(None)))
    return [row_dict(c) for c in q.order_by(Conversation.type, Conversation.name).all()]

@router.get("/conversations/{conversation_id}")
def conversation(conversation_id: str, db: Session = Depends(get_db), ctx: AccountContext = Depends(require_restaurant)):
    return row_dict(_member_conversation(db, conversation_id, ctx))

@router.post("/channels", status_code=201)
def create_channel(body: ChannelIn, db: Session = Depends(get_db), hub: NotificationHub = Depends(get_hub),
                   ctx: AccountContext = Depends(require_restaurant)):
    if body.scope == "branch":
        if not body.branch_id:
            raise ValidationFailed("Branch ID required for branch-scoped channels", fields={"branch_id": "required"})
        get_owned(db, Branch, body.branch_id, ctx.restaurant_id, "Branch")
    c = Conversation(
        restaurant_id=ctx.restaurant_id,
        type=ConversationType.CHANNEL,
        name=body.name,
        scope=body.scope,
        branch_id=body.branch_id if body.scope == "branch" else None,
        created_by=ctx.user_id,
    )
    db.add(c); db.flush()
    _add_members(db, hub, c, [ctx.user_id])
    return row_dict(c)

@router.post("/direct")
def direct(body: DirectIn, db: Session = Depends(get_db), hub: NotificationHub = Depends(get_hub),
           ctx: AccountContext = Depends(require_restaurant)):
    if body.other_user_id == ctx.user_id:
        raise ValidationFailed("Cannot create DM with yourself")
    other = get_owned(db, User, body.other_user_id, ctx.restaurant_id, "User")

    # an existing DM is a direct conversation both users belong to
    pair = (db.query(ConversationMember.conversation_id)
              .join(Conversation, Conversation.id == ConversationMember.conversation_id)
              .filter(Conversation.restaurant_id == ctx.restaurant_id,
                      Conversation.type == ConversationType.DIRECT,
                      ConversationMember.user_id.in_([ctx.user_id, other.id]))
              .group_by(ConversationMember.conversation_id)
              .having(func.count(ConversationMember.user_id) == 2)
              .first())
    if pair:
        return row_dict(db.get(Conversation, pair[0]))

    c = Conversation(restaurant_id=ctx.restaurant_id, type=ConversationType.DIRECT, created_by=ctx.user_id)
    db.add(c); db.flush()
    _add_members(db, hub, c, [ctx.user_id, other.id])
    return row_dict(c)

@router.get("/conversations/{conversation_id}/members")
def members(conversation_id: str, db: Session = Depends(get_db), ctx: AccountContext = Depends(require_restaurant)):
    c = _member_conversation(db, conversation_id, ctx)
    rows = (db.query(User.id, User.full_name, User.role)
              .join(ConversationMember, ConversationMember.user_id == User.id)
              .filter(ConversationMember.conversation_id == c.id,
                      ConversationMember.restaurant_id == ctx.restaurant_id).all())
    return [{"id": uid, "full_name": name, "role": role.value} for uid, name, role in rows]

@router.get("/conversations/{conversation_id}/messages")
def messages(conversation_id: str, limit: int = 50, db: Session = Depends(get_db),
             ctx: AccountContext = Depends(require_restaurant)):
    c = _member_conversation(db, conversation_id, ctx)
    rows = (db.query(ChatMessage)
              .filter(ChatMessage.conversation_id == c.id, ChatMessage.restaurant_id == ctx.restaurant_id)
              .order_by(ChatMessage.created_at.desc())
              .limit(max(1, min(limit, 200))).all())
    # newest page, oldest first
    return [row_dict(m) for m in reversed(rows)]

@router.post("/conversations/{conversation_id}/messages", status_code=201)
def send_message(conversation_id: str, body: ChatMessageIn, db: Session = Depends(get_db),
                 hub: NotificationHub = Depends(get_hub), ctx: AccountContext = Depends(require_restaurant)):
    content = body.content.strip()
    if not content:
        raise ValidationFailed("Message content is required", fields={"content": "required"})
    c = _member_conversation(db, conversation_id, ctx)
    m = ChatMessage(restaurant_id=ctx.restaurant_id, conversation_id=c.id, sender_id=ctx.user_id,
                    sender_name=ctx.full_name, content=content)
    db.add(m); db.commit()
    out = row_dict(m)
    hub.publish(Event(EventType.CHAT_MESSAGE, ctx.restaurant_id, {"message": out}, conversation_id=c.id))
    return out

@router.post("/conversations/{conversation_id}/read")
def mark_read(conversation_id: str, db: Session = Depends(get_db), ctx: AccountContext = Depends(require_restaurant)):
    c = _member_conversation(db, conversation_id, ctx)
    db.query(ConversationMember).filter(
        ConversationMember.conversation_id == c.id, ConversationMember.user_id == ctx.user_id,
    ).update({ConversationMember.last_read_at: datetime.now(timezone.utc)}, synchronize_session=False)
    db.commit()
    return {"ok": True}
