import logging
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError, ValidationError
from app.db.transaction import transaction
from app.models.conversation import Conversation, ConversationParticipant
from app.models.message import Message
from app.models.principal import PrincipalKind, get_principal, owner_column, owner_fields
from app.schemas.conversation import (
    ConversationCreateRequest,
    ConversationDetail,
    ConversationOut,
    MessageOut,
    ParticipantOut,
    ParticipantRef,
    ReadReceiptOut,
    UserSummary,
)
from app.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)


def _participant_clause(kind: PrincipalKind, principal_id: str):
    return getattr(ConversationParticipant, owner_column(kind)) == principal_id


def _sender_fields(kind: PrincipalKind, principal_id: str) -> dict:
    return {f"{kind.value}_sender_id": principal_id}


def find_participant(
        db: Session,
        conversation_id: str,
        principal_id: str,
        kind: PrincipalKind,
        active_only: bool = False,
) -> Optional[ConversationParticipant]:
    query = db.query(ConversationParticipant).filter(
        ConversationParticipant.conversation_id == conversation_id,
        _participant_clause(kind, principal_id),
    )
    if active_only:
        query = query.filter(ConversationParticipant.left_at.is_(None))
    return query.first()


def is_active_participant(db: Session, conversation_id: str, principal_id: str, kind: PrincipalKind) -> bool:
    return find_participant(db, conversation_id, principal_id, kind, active_only=True) is not None


# =========================
# serialization
# =========================

def _participant_user(participant: ConversationParticipant) -> Optional[UserSummary]:
    for kind in PrincipalKind:
        user = getattr(participant, kind.value)
        if user is not None:
            return UserSummary(id=user.id, name=user.name, user_type=kind)
    return None


def _message_sender(message: Message) -> Optional[UserSummary]:
    for kind in PrincipalKind:
        user = getattr(message, f"{kind.value}_sender")
        if user is not None:
            return UserSummary(id=user.id, name=user.name, user_type=kind)
    return None


def message_to_out(message: Message) -> MessageOut:
    return MessageOut(
        id=message.id,
        conversation_id=message.conversation_id,
        content=message.content,
        sender=_message_sender(message),
        created_at=message.created_at,
    )


def _participants_out(conversation: Conversation) -> List[ParticipantOut]:
    return [
        ParticipantOut(
            id=p.id,
            user=_participant_user(p),
            joined_at=p.joined_at,
            left_at=p.left_at,
            last_read_at=p.last_read_at,
        )
        for p in conversation.participants
    ]


def conversation_to_out(db: Session, conversation: Conversation) -> ConversationOut:
    last_message = (
        db.query(Message)
        .filter(Message.conversation_id == conversation.id)
        .order_by(Message.created_at.desc())
        .first()
    )
    message_count = (
        db.query(func.count(Message.id))
        .filter(Message.conversation_id == conversation.id)
        .scalar()
    )
    return ConversationOut(
        id=conversation.id,
        title=conversation.title,
        created_at=conversation.created_at,
        updated_at=conversation.updated_at,
        participants=_participants_out(conversation),
        last_message=message_to_out(last_message) if last_message else None,
        message_count=message_count or 0,
    )


# =========================
# queries
# =========================

def list_conversations(db: Session, principal_id: str, kind: PrincipalKind) -> List[ConversationOut]:
    conversations = (
        db.query(Conversation)
        .join(ConversationParticipant)
        .filter(_participant_clause(kind, principal_id))
        .order_by(Conversation.updated_at.desc())
        .all()
    )
    return [conversation_to_out(db, c) for c in conversations]


def get_conversation(db: Session, principal_id: str, kind: PrincipalKind, conversation_id: str) -> ConversationDetail:
    if not find_participant(db, conversation_id, principal_id, kind):
        raise NotFoundError("Conversation not found")

    conversation = db.query(Conversation).filter(Conversation.id == conversation_id).first()
    summary = conversation_to_out(db, conversation)
    return ConversationDetail(
        **summary.model_dump(),
        messages=[message_to_out(m) for m in conversation.messages],
    )


# =========================
# commands
# =========================

def _resolve_participants(
        db: Session,
        principal_id: str,
        kind: PrincipalKind,
        requested: List[ParticipantRef],
) -> List[Tuple[str, PrincipalKind]]:
    """ Requested participants plus the caller, de-duplicated, each checked to exist """
    members = [(principal_id, kind)]
    missing = []
    for ref in requested:
        member = (ref.user_id, ref.user_type)
        if member in members:
            continue
        if not get_principal(db, ref.user_type, ref.user_id):
            missing.append(f"{ref.user_type.value} {ref.user_id} not found")
            continue
        members.append(member)

    if missing:
        raise ValidationError({"participants": missing})
    if len(members) < 2:
        raise ValidationError({"participants": ["A conversation needs at least one other participant"]})
    return members


def create_conversation(
        db: Session,
        principal_id: str,
        kind: PrincipalKind,
        conversation_in: ConversationCreateRequest,
) -> Tuple[ConversationOut, List[str]]:
    """
    Returns the created conversation and the ids of the other participants, who are
    to be notified through their personal rooms.
    """
    members = _resolve_participants(db, principal_id, kind, conversation_in.participants)

    with transaction(db):
        conversation = Conversation(title=conversation_in.title)
        db.add(conversation)
        db.flush()
        for member_id, member_kind in members:
            db.add(ConversationParticipant(
                conversation_id=conversation.id,
                **owner_fields(member_kind, member_id),
            ))
        if conversation_in.initial_message:
            db.add(Message(
                conversation_id=conversation.id,
                content=conversation_in.initial_message,
                **_sender_fields(kind, principal_id),
            ))

    db.refresh(conversation)
    logger.info(f"Conversation {conversation.id} created by {kind.value} {principal_id}")
    others = [member_id for member_id, _ in members if member_id != principal_id]
    return conversation_to_out(db, conversation), others


def send_message(
        db: Session,
        principal_id: str,
        kind: PrincipalKind,
        conversation_id: str,
        content: str,
) -> MessageOut:
    if not is_active_participant(db, conversation_id, principal_id, kind):
        raise NotFoundError("Conversation not found or you don't have access")

    with transaction(db):
        message = Message(
            conversation_id=conversation_id,
            content=content,
            **_sender_fields(kind, principal_id),
        )
        db.add(message)
        db.query(Conversation).filter(Conversation.id == conversation_id).update(
            {Conversation.updated_at: utcnow()}, synchronize_session=False
        )

    db.refresh(message)
    return message_to_out(message)


def mark_as_read(db: Session, principal_id: str, kind: PrincipalKind, conversation_id: str) -> ReadReceiptOut:
    with transaction(db):
        participant = find_participant(db, conversation_id, principal_id, kind)
        if not participant:
            raise NotFoundError("Conversation not found")
        participant.last_read_at = utcnow()
        read_at = participant.last_read_at
    return ReadReceiptOut(conversation_id=conversation_id, last_read_at=read_at)


def leave_conversation(db: Session, principal_id: str, kind: PrincipalKind, conversation_id: str) -> None:
    with transaction(db):
        participant = find_participant(db, conversation_id, principal_id, kind)
        if not participant:
            raise NotFoundError("You are not part of this conversation")
        participant.left_at = utcnow()
