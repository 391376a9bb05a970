"""Main FastAPI application - real-time chat, presence and file-streaming server"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, Request, WebSocket
from fastapi.responses import FileResponse
from pydantic import BaseModel
import uvicorn

from config import Settings, configure_logging
from database.chat_database import ChatDatabase
from events.router import EventRouter
from websocket.connection_manager import ConnectionManager
from websocket.handler import handle_websocket_connection

logger = logging.getLogger(__name__)


class MarkAsReadRequest(BaseModel):
    userId: str
    otherUserId: str


class MarkGroupAsReadRequest(BaseModel):
    userId: str
    groupId: str


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application; chat state lives on app.state for the app's lifetime"""
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup and shutdown"""
        # Startup: logging first, then the database and the chat engine
        configure_logging(settings.log_level)
        db = ChatDatabase(settings.db_path)
        await db.init()
        connection_manager = ConnectionManager()
        router = EventRouter(db, connection_manager, settings.upload_dir)
        router.startup()

        app.state.db = db
        app.state.connection_manager = connection_manager
        app.state.router = router
        logger.info("Chat server started, uploads stored in %s", settings.upload_dir)

        yield

        # Shutdown: flush uploads before the database goes away
        await router.shutdown()
        await db.close()
        logger.info("Application shutdown complete")

    app = FastAPI(lifespan=lifespan)
    app.state.settings = settings

    @app.get("/")
    async def get_status(request: Request) -> dict:
        """Health check"""
        return {"status": "ok", "connections": request.app.state.connection_manager.get_connection_count()}

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        """WebSocket endpoint that delegates to handler"""
        state = websocket.app.state
        await handle_websocket_connection(websocket, state.router, state.connection_manager)

    @app.get("/uploads/{file_name}")
    async def get_upload(file_name: str) -> FileResponse:
        """Download a file that was shared in a chat"""
        root = settings.upload_dir.resolve()
        path = (root / file_name).resolve()
        if path.parent != root or not path.is_file():
            raise HTTPException(status_code=404, detail="File not found")
        return FileResponse(path)

    @app.get("/chat/unread-counts/{user_id}")
    async def get_unread_counts(user_id: str, request: Request) -> dict:
        """Unread one-to-one messages per sender"""
        counts = await request.app.state.router.messages.unread_counts(user_id)
        return {"success": True, "unreadCounts": counts}

    @app.get("/chat/group-unread-counts/{user_id}")
    async def get_group_unread_counts(user_id: str, request: Request) -> dict:
        """Unread group messages per group"""
        counts = await request.app.state.router.messages.group_unread_counts(user_id)
        return {"success": True, "unreadCounts": counts}

    @app.post("/chat/mark-as-read")
    async def mark_as_read(body: MarkAsReadRequest, request: Request) -> dict:
        """Mark everything otherUserId sent to userId as read"""
        await request.app.state.router.messages.mark_direct_read(recipient=body.userId, sender=body.otherUserId)
        return {"success": True, "message": "Messages marked as read"}

    @app.post("/chat/mark-group-as-read")
    async def mark_group_as_read(body: MarkGroupAsReadRequest, request: Request) -> dict:
        """Mark the other members' messages in the group as read"""
        await request.app.state.router.messages.mark_group_read(body.userId, body.groupId)
        return {"success": True, "message": "Group messages marked as read"}

    @app.get("/chat/notifications/{user_id}")
    async def get_notifications(user_id: str, request: Request) -> dict:
        """Stored notifications for a user, newest first"""
        notifications = await request.app.state.router.notifier.store.list_for_recipient(user_id)
        return {"success": True, "notifications": [n.to_dict() for n in notifications]}

    return app


app = create_app()


if __name__ == "__main__":
    settings = Settings.from_env()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)
