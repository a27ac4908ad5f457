import os
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import List, Optional, Dict, Any

from fastapi import FastAPI, HTTPException, Depends, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, EmailStr
from pymongo.database import Database
from pymongo.errors import PyMongoError

import database
from database import get_db
from auth import get_current_user, get_optional_user, get_token, require_active_user, require_admin
from navigation import AuthState, Navigator, Page
from notifications import NotificationWatcher, compute_counts
from schemas import Availability, ContactInfo, Visibility
import announcements
import auth
import chats
import profiles
import skill_requests
import uploads

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("skillswap")

@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        database.ensure_indexes(database.db)
    yield


app = FastAPI(title="SkillSwap API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PyMongoError)
async def backend_error_handler(request: Request, exc: PyMongoError):
    logger.error("Backend error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=503, content={"detail": "Backend unavailable, please retry"})


# ---------------------------
# Models (requests/responses)
# ---------------------------
class SignupRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = None
    location: Optional[str] = None
    skills_offered: Optional[List[str]] = None
    skills_wanted: Optional[List[str]] = None
    availability: Optional[Availability] = None
    visibility: Optional[Visibility] = None
    contact_info: Optional[ContactInfo] = None


class PhotoUploadRequest(BaseModel):
    image_base64: str = Field(..., min_length=1)


class FeedbackRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1)


class SkillRequestCreate(BaseModel):
    to_user_id: str
    offered_skill: str = Field(..., min_length=1)
    wanted_skill: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)


class RequestStatusUpdate(BaseModel):
    status: str = Field(..., pattern="^(accepted|rejected)$")


class ChatOpenRequest(BaseModel):
    other_user_id: str


class ChatMessageCreate(BaseModel):
    text: str = Field(..., min_length=1, max_length=2000)


class AnnouncementCreate(BaseModel):
    message: str = Field(..., min_length=1)


# ---------------------------
# Health & Utility
# ---------------------------
@app.get("/")
def read_root():
    return {"message": "SkillSwap API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Available"
            response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
            response["database_name"] = database.db.name
            response["connection_status"] = "Connected"
            try:
                collections = database.db.list_collection_names()
                response["collections"] = collections[:10]
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                response["database"] = f"⚠️ Connected but Error: {str(e)[:50]}"
        else:
            response["database"] = "⚠️ Available but not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"
    return response


# ---------------------------
# Authentication
# ---------------------------
@app.post("/auth/signup")
def signup(payload: SignupRequest, db: Database = Depends(get_db)):
    return auth.sign_up(db, payload.name.strip(), payload.email, payload.password)


@app.post("/auth/login")
def login(payload: LoginRequest, db: Database = Depends(get_db)):
    return auth.sign_in(db, payload.email, payload.password)


@app.post("/auth/logout")
def logout(token: str = Depends(get_token), db: Database = Depends(get_db)):
    auth.sign_out(db, token)
    return {"logged_out": True}


# ---------------------------
# Own profile
# ---------------------------
@app.get("/me")
def me(current=Depends(get_current_user)):
    return profiles.public_view(current)


@app.put("/me/profile")
def update_my_profile(payload: ProfileUpdateRequest, current=Depends(require_active_user),
                      db: Database = Depends(get_db)):
    fields = payload.model_dump(exclude_none=True)
    for key in ("skills_offered", "skills_wanted"):
        if key in fields:
            fields[key] = [s.strip() for s in fields[key] if s.strip()]
    return profiles.update_profile(db, current["id"], fields)


@app.post("/me/photo")
def upload_my_photo(payload: PhotoUploadRequest, current=Depends(require_active_user),
                    db: Database = Depends(get_db)):
    url = uploads.upload_image(payload.image_base64)
    return profiles.set_photo(db, current["id"], url)


@app.get("/me/notifications")
def my_notifications(current=Depends(get_current_user), db: Database = Depends(get_db)):
    return compute_counts(db, current["id"])


@app.get("/me/navigation")
def my_navigation(current_page: Page = Query(Page.HOME, alias="current"),
                  target: Optional[Page] = None, user_id: Optional[str] = None,
                  current=Depends(get_optional_user)):
    nav = Navigator(current_page)
    nav.on_auth_change(AuthState(
        resolved=True,
        user_id=current["id"] if current else None,
        profile=current,
    ))
    if target is not None:
        nav.navigate(target, user_id)
    return nav.state()


# ---------------------------
# Discovery & public profiles
# ---------------------------
@app.get("/users")
def list_users(q: str = "", availability: str = Query("All", pattern="^(All|Weekends|Evenings|Weekdays)$"),
               page: int = Query(1, ge=1), per_page: int = Query(profiles.USERS_PER_PAGE, ge=1, le=50),
               current=Depends(get_optional_user), db: Database = Depends(get_db)):
    exclude = current["id"] if current else None
    return profiles.list_public_users(db, exclude, q, availability, page, per_page)


@app.get("/users/{user_id}")
def get_user(user_id: str, current=Depends(get_optional_user), db: Database = Depends(get_db)):
    profile = profiles.get_profile(db, user_id)
    if current and current["id"] != user_id:
        profile["can_interact"] = skill_requests.has_accepted_request(db, current["id"], user_id)
        profile["has_given_feedback"] = any(
            f.get("from_user_id") == current["id"] for f in profile.get("feedback", [])
        )
    return profile


@app.post("/users/{user_id}/feedback")
def give_feedback(user_id: str, payload: FeedbackRequest, current=Depends(require_active_user),
                  db: Database = Depends(get_db)):
    if not skill_requests.has_accepted_request(db, current["id"], user_id):
        raise HTTPException(status_code=403, detail="Feedback requires an accepted swap")
    return profiles.add_feedback(db, user_id, current, payload.rating, payload.comment)


# ---------------------------
# Skill swap requests
# ---------------------------
@app.post("/requests")
def create_request(payload: SkillRequestCreate, current=Depends(require_active_user),
                   db: Database = Depends(get_db)):
    return skill_requests.create_request(
        db, current, payload.to_user_id, payload.offered_skill, payload.wanted_skill, payload.message
    )


@app.get("/requests")
def list_requests(direction: str = Query("received", pattern="^(received|sent)$"),
                  current=Depends(get_current_user), db: Database = Depends(get_db)):
    if direction == "received":
        return skill_requests.list_received(db, current["id"])
    return skill_requests.list_sent(db, current["id"])


@app.get("/requests/accepted/{other_user_id}")
def accepted_with(other_user_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    return {"has_accepted": skill_requests.has_accepted_request(db, current["id"], other_user_id)}


@app.patch("/requests/{request_id}/status")
def update_request_status(request_id: str, req: RequestStatusUpdate, current=Depends(require_active_user),
                          db: Database = Depends(get_db)):
    return skill_requests.set_status(db, request_id, req.status, current["id"])


@app.post("/requests/{request_id}/read")
def mark_request_read(request_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    return skill_requests.mark_read(db, request_id, current["id"])


# ---------------------------
# Chats
# ---------------------------
@app.post("/chats")
def open_chat(payload: ChatOpenRequest, current=Depends(require_active_user), db: Database = Depends(get_db)):
    other = profiles.get_profile(db, payload.other_user_id)
    if not skill_requests.has_accepted_request(db, current["id"], other["id"]):
        raise HTTPException(status_code=403, detail="Messaging requires an accepted swap")
    chat, created = chats.get_or_create_conversation(db, current, other)
    return {"chat": chat, "created": created}


@app.get("/chats")
def list_my_chats(current=Depends(get_current_user), db: Database = Depends(get_db)):
    return chats.list_conversations(db, current["id"])


@app.get("/chats/{chat_id}/messages")
def chat_messages(chat_id: str, limit: int = Query(50, ge=1, le=200), current=Depends(get_current_user),
                  db: Database = Depends(get_db)):
    chat = chats.get_chat(db, chat_id)
    chats.require_participant(chat, current["id"])
    return chats.get_messages(db, chat_id, limit)


@app.post("/chats/{chat_id}/messages")
def post_chat_message(chat_id: str, payload: ChatMessageCreate, current=Depends(require_active_user),
                      db: Database = Depends(get_db)):
    chat = chats.get_chat(db, chat_id)
    other_id = chats.other_participant(chat, current["id"])
    return chats.send_message(db, chat_id, current, payload.text, other_id)


@app.post("/chats/{chat_id}/read")
def read_chat(chat_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    chat = chats.get_chat(db, chat_id)
    chats.require_participant(chat, current["id"])
    chats.mark_read(db, chat_id, current["id"])
    return {"chat_id": chat_id, "unread": 0}


# ---------------------------
# Announcements
# ---------------------------
@app.get("/announcements")
def list_announcements(current=Depends(get_current_user), db: Database = Depends(get_db)):
    return announcements.list_announcements(db)


@app.post("/announcements/seen")
def see_all_announcements(current=Depends(get_current_user), db: Database = Depends(get_db)):
    return {"newly_seen": announcements.mark_all_seen(db, current["id"])}


@app.post("/announcements/{message_id}/seen")
def see_announcement(message_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    announcements.mark_seen(db, message_id, current["id"])
    return {"seen": True}


# ---------------------------
# Admin
# ---------------------------
@app.get("/admin/users")
def admin_users(admin=Depends(require_admin), db: Database = Depends(get_db)):
    return profiles.list_all_users(db)


@app.post("/admin/users/{user_id}/ban")
def admin_ban(user_id: str, admin=Depends(require_admin), db: Database = Depends(get_db)):
    if user_id == admin["id"]:
        raise HTTPException(status_code=400, detail="Admins cannot ban themselves")
    return profiles.set_banned(db, user_id, True)


@app.post("/admin/users/{user_id}/unban")
def admin_unban(user_id: str, admin=Depends(require_admin), db: Database = Depends(get_db)):
    return profiles.set_banned(db, user_id, False)


@app.get("/admin/requests")
def admin_requests(status: Optional[str] = Query(None, pattern="^(pending|accepted|rejected)$"),
                   admin=Depends(require_admin), db: Database = Depends(get_db)):
    return skill_requests.list_all(db, status)


@app.post("/admin/announcements")
def admin_announce(payload: AnnouncementCreate, admin=Depends(require_admin), db: Database = Depends(get_db)):
    return announcements.create_announcement(db, payload.message, created_by=admin["id"])


@app.get("/admin/chats")
def admin_chats(admin=Depends(require_admin), db: Database = Depends(get_db)):
    counts = chats.message_counts(db)
    result: List[Dict[str, Any]] = []
    for chat in chats.list_all_conversations(db):
        chat["message_count"] = counts.get(chat["id"], 0)
        result.append(chat)
    return result


@app.get("/admin/chats/{chat_id}/messages")
def admin_chat_messages(chat_id: str, admin=Depends(require_admin), db: Database = Depends(get_db)):
    chats.get_chat(db, chat_id)
    messages = chats.list_all_messages(db, chat_id)
    messages.reverse()
    return messages


# ---------------------------
# Live notification counts
# ---------------------------
async def _forward(queue: asyncio.Queue, websocket: WebSocket) -> None:
    while True:
        payload = await queue.get()
        await websocket.send_json(payload)


@app.websocket("/ws/notifications")
async def notifications_socket(websocket: WebSocket, token: Optional[str] = None,
                               db: Database = Depends(get_db)):
    user = await run_in_threadpool(auth.user_for_token, db, token)
    if not user:
        await websocket.close(code=1008)
        return
    await websocket.accept()

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def push(counts) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, counts.model_dump())

    watcher = await run_in_threadpool(NotificationWatcher, db, user["id"], push)
    sender = asyncio.create_task(_forward(queue, websocket))
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        sender.cancel()
        await asyncio.gather(sender, return_exceptions=True)
        watcher.close()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
