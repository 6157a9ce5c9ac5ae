"""
AI assistant routes.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from splan.assistant import Assistant
from splan.db import MessageRecord, UserRecord
from splan.dependencies import get_assistant, get_current_user
from splan.schemas import (
    ChatMessageOut,
    ChatOut,
    ChatRequest,
    ConversationOut,
    ConversationsOut,
    Envelope,
    MessagesOut,
    ScopeOut,
    SuggestGoalsRequest,
    SuggestionsOut,
    SuggestTasksRequest,
)

router = APIRouter(prefix="/ai", tags=["ai"])


def _messages(messages: list[MessageRecord]) -> list[ChatMessageOut]:
    return [ChatMessageOut(role=m.role, content=m.content) for m in messages]


@router.post("/chat", response_model=Envelope[ChatOut])
def chat(
    payload: ChatRequest,
    user: UserRecord = Depends(get_current_user),
    assistant: Assistant = Depends(get_assistant),
):
    message = (payload.message or "").strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message is required")
    reply, conversation_id = assistant.chat(user.id, message, payload.conversation_id)
    return Envelope[ChatOut](
        message="AI response generated successfully",
        data=ChatOut(response=reply, conversation_id=conversation_id),
    )


@router.post("/suggest-goals", response_model=Envelope[SuggestionsOut])
def suggest_goals(
    payload: SuggestGoalsRequest,
    user: UserRecord = Depends(get_current_user),
    assistant: Assistant = Depends(get_assistant),
):
    if not payload.context:
        raise HTTPException(status_code=400, detail="Context is required")
    suggestions = assistant.suggest_goals(user.id, payload.context)
    return Envelope[SuggestionsOut](
        message="Goal suggestions generated successfully",
        data=SuggestionsOut(suggestions=suggestions),
    )


@router.post("/suggest-tasks", response_model=Envelope[SuggestionsOut])
def suggest_tasks(
    payload: SuggestTasksRequest,
    user: UserRecord = Depends(get_current_user),
    assistant: Assistant = Depends(get_assistant),
):
    if not payload.goal_id:
        raise HTTPException(status_code=400, detail="Goal ID is required")
    suggestions = assistant.suggest_tasks(user.id, payload.goal_id)
    return Envelope[SuggestionsOut](
        message="Task suggestions generated successfully",
        data=SuggestionsOut(suggestions=suggestions),
    )


@router.post("/regenerate-goal-scope/{goal_id}", response_model=Envelope[ScopeOut])
def regenerate_goal_scope(
    goal_id: str,
    user: UserRecord = Depends(get_current_user),
    assistant: Assistant = Depends(get_assistant),
):
    scope = assistant.regenerate_goal_scope(user.id, goal_id)
    if scope is None:
        raise HTTPException(status_code=404, detail="Goal not found")
    return Envelope[ScopeOut](
        message="Goal scope regenerated successfully", data=ScopeOut(scope=scope)
    )


@router.get("/conversations", response_model=Envelope[ConversationsOut])
def list_conversations(
    user: UserRecord = Depends(get_current_user),
    assistant: Assistant = Depends(get_assistant),
):
    conversations = [
        ConversationOut(
            id=conversation.id,
            user_id=conversation.user_id,
            messages=_messages(latest),
            context=conversation.context,
            summary=conversation.summary,
            updated_at=conversation.updated_at,
        )
        for conversation, latest in assistant.list_conversations(user.id)
    ]
    return Envelope[ConversationsOut](
        message="Conversations retrieved successfully",
        data=ConversationsOut(conversations=conversations),
    )


@router.get("/conversations/{conversation_id}", response_model=Envelope[MessagesOut])
def conversation_history(
    conversation_id: str,
    user: UserRecord = Depends(get_current_user),
    assistant: Assistant = Depends(get_assistant),
):
    messages = assistant.conversation_history(user.id, conversation_id)
    return Envelope[MessagesOut](
        message="Conversation history retrieved successfully",
        data=MessagesOut(messages=_messages(messages)),
    )
