"""GlimmerMind Chat - FastAPI Backend."""

import logging
import os
from datetime import datetime, timezone

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from conversation import CHAT_TIMEOUT_SECONDS, ConversationController
from llm_router import LLMRouter
from models import Message
from persistence import CONTACTS_TABLE, build_store
from prompts import CONTACT_FAILURE, CONTACT_SUCCESS

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="GlimmerMind Chat")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

CHAT_TIMEOUT = float(os.getenv("CHAT_TIMEOUT_SECONDS", CHAT_TIMEOUT_SECONDS))
MAX_CONVERSATIONS = int(os.getenv("MAX_CONVERSATIONS", "1000"))

llm = LLMRouter()
store = build_store()
conversations: dict[str, ConversationController] = {}


# ── Pydantic Models ──────────────────────────────────────────────────────────


class SubmitRequest(BaseModel):
    content: str


class ContactRequest(BaseModel):
    name: str
    email: str
    message: str


class ConversationResponse(BaseModel):
    conversationId: str
    isLoading: bool = False
    messages: list[Message] = []


class SubmitResponse(BaseModel):
    conversationId: str
    reply: Message | None
    messages: list[Message]


def _get_conversation(conversation_id: str) -> ConversationController:
    controller = conversations.get(conversation_id)
    if controller is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return controller


def _register(controller: ConversationController) -> None:
    # A controller is reachable only under its current id
    for key in [k for k, c in conversations.items() if c is controller]:
        del conversations[key]
    conversations[controller.conversation_id] = controller


def _evict_idle(room: int = 0) -> None:
    """Drop the oldest idle sessions so a new one fits under MAX_CONVERSATIONS."""
    excess = len(conversations) + room - MAX_CONVERSATIONS
    if excess <= 0:
        return
    idle = [k for k, c in conversations.items() if not c.is_loading][:excess]
    for key in idle:
        del conversations[key]
    if idle:
        logger.info(f"Evicted {len(idle)} idle conversations")


def _snapshot(controller: ConversationController) -> ConversationResponse:
    return ConversationResponse(
        conversationId=controller.conversation_id,
        isLoading=controller.is_loading,
        messages=controller.messages,
    )


# ── API Endpoints ────────────────────────────────────────────────────────────


@app.post("/api/conversations")
async def create_conversation():
    """Start a new conversation session."""
    controller = ConversationController(llm, store, timeout=CHAT_TIMEOUT)
    _evict_idle(room=1)
    _register(controller)
    logger.info(f"Started conversation {controller.conversation_id}")
    return _snapshot(controller)


@app.get("/api/conversations/{conversation_id}")
async def get_conversation(conversation_id: str):
    return _snapshot(_get_conversation(conversation_id))


@app.post("/api/conversations/{conversation_id}/messages")
async def submit_message(conversation_id: str, req: SubmitRequest):
    """Send a user message and wait for the assistant reply."""
    controller = _get_conversation(conversation_id)
    reply = await controller.submit(req.content)
    return SubmitResponse(
        conversationId=controller.conversation_id,
        reply=reply,
        messages=controller.messages,
    )


@app.post("/api/conversations/{conversation_id}/messages/{index}/like")
async def like_message(conversation_id: str, index: int):
    controller = _get_conversation(conversation_id)
    try:
        return await controller.like(index)
    except IndexError:
        raise HTTPException(status_code=404, detail="Message not found")


@app.post("/api/conversations/{conversation_id}/messages/{index}/dislike")
async def dislike_message(conversation_id: str, index: int):
    controller = _get_conversation(conversation_id)
    try:
        return await controller.dislike(index)
    except IndexError:
        raise HTTPException(status_code=404, detail="Message not found")


@app.post("/api/conversations/{conversation_id}/clear")
async def clear_conversation(conversation_id: str):
    """Wipe the conversation; it continues under a fresh id."""
    controller = _get_conversation(conversation_id)
    await controller.clear()
    _register(controller)
    return _snapshot(controller)


@app.post("/api/contact")
async def submit_contact(req: ContactRequest):
    """Store a contact form submission."""
    record = {
        "name": req.name,
        "email": req.email,
        "message": req.message,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }
    try:
        await store.insert(CONTACTS_TABLE, record)
    except Exception as e:
        logger.error(f"Error storing contact request: {e}")
        raise HTTPException(status_code=500, detail=CONTACT_FAILURE)
    return {"status": "success", "message": CONTACT_SUCCESS}
