"""Browser WebSocket handler - drives one chat orchestrator per connection."""

import uuid
from typing import Any

import structlog
from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from muzgpt.client import events
from muzgpt.client.backend import BackendClient, BackendError
from muzgpt.client.orchestrator import ChatOrchestrator, ModeLockedError
from muzgpt.client.relay import StreamingRelay
from muzgpt.config import Settings
from muzgpt.models.mode import Mode
from muzgpt.storage.local_storage import LocalStorage

logger = structlog.get_logger()


def validate_client_id(client_id: str) -> str:
    """Client ids name storage directories, so only UUIDs are accepted."""
    return str(uuid.UUID(client_id))


class ChatConnection:
    """State and collaborators behind a single browser connection.

    Args:
        settings: Application settings.
        browser_ws: WebSocket connection to the browser.
        client_id: Stable id of the browser's local storage.
    """

    def __init__(self, settings: Settings, browser_ws: WebSocket, client_id: str):
        self.settings = settings
        self.browser_ws = browser_ws
        self.client_id = client_id
        self.backend = BackendClient(settings.api_base_url)
        self.relay = StreamingRelay(
            api_key=settings.openai_api_key,
            model=settings.chat_model,
            temperature=settings.generation_temperature,
            timeout=settings.generation_timeout_seconds,
        )
        self.orchestrator = ChatOrchestrator(
            LocalStorage(settings.client_state_dir / client_id),
            self.relay,
            backend=self.backend,
            notify=self._send_to_browser,
        )

    async def handle(self, data: dict[str, Any]) -> None:
        """Dispatch one browser message."""
        msg_type = data.get("type", "")
        orch = self.orchestrator

        try:
            if msg_type == "login":
                await orch.login(str(data.get("userId", "")))
            elif msg_type == "logout":
                orch.logout()
                await orch.publish_state()
            elif msg_type == "send_message":
                await orch.send(str(data.get("text", "")))
            elif msg_type == "select_mode":
                orch.select_mode(Mode(data.get("mode", "")))
                await orch.publish_state()
            elif msg_type == "new_chat":
                orch.new_chat()
                await orch.publish_state()
            elif msg_type == "select_chat":
                if not orch.select_chat(str(data.get("chatId", ""))):
                    await self._send_to_browser(events.error_event("Chat not found", "not_found"))
                await orch.publish_state()
            elif msg_type == "delete_chat":
                orch.delete_chat(str(data.get("chatId", "")))
                await orch.publish_state()
            elif msg_type == "start_checkout":
                await orch.start_checkout()
            elif msg_type == "confirm_upgrade":
                await orch.confirm_upgrade(
                    session_id=data.get("sessionId"), user_id=data.get("userId")
                )
            elif msg_type == "sync":
                await orch.sync()
                await orch.publish_state()
            elif msg_type == "reset":
                orch.reset()
                await orch.publish_state()
            else:
                await self._send_to_browser(
                    events.error_event(f"Unknown message type: {msg_type}", "bad_request")
                )
        except ModeLockedError as e:
            await self._send_to_browser(
                events.upgrade_prompt_event("mode_locked", orch.profile.tier.value)
            )
            logger.info("mode_locked", mode=e.mode.value)
        except BackendError as e:
            logger.warning("backend_request_failed", type=msg_type, status_code=e.status_code)
            await self._send_to_browser(events.error_event(e.detail, "backend"))
        except (ValueError, ValidationError) as e:
            await self._send_to_browser(events.error_event(str(e), "bad_request"))

    async def close(self) -> None:
        self.orchestrator.gamification.clear()
        await self.backend.aclose()

    async def _send_to_browser(self, data: dict) -> None:
        """Send a message to the browser WebSocket."""
        try:
            await self.browser_ws.send_json(data)
        except Exception:
            logger.warning("browser_send_failed")


async def handle_browser_websocket(websocket: WebSocket, settings: Settings) -> None:
    """Handle a browser WebSocket connection.

    The first message must be ``{"type": "start", "clientId": <uuid>}``.
    """
    await websocket.accept()
    connection: ChatConnection | None = None

    try:
        while True:
            data = await websocket.receive_json()
            msg_type = data.get("type", "")

            if msg_type == "start":
                try:
                    client_id = validate_client_id(str(data.get("clientId", "")))
                except ValueError:
                    await websocket.send_json(events.error_event("Invalid client id", "bad_request"))
                    continue
                if connection:
                    await connection.close()
                connection = ChatConnection(settings, websocket, client_id)
                logger.info("browser_connected", client_id=client_id)
                await connection.orchestrator.publish_state()
            elif connection is None:
                await websocket.send_json(events.error_event("Send 'start' first", "bad_request"))
            else:
                await connection.handle(data)

    except WebSocketDisconnect:
        logger.info("browser_disconnected")
    except Exception:
        logger.exception("websocket_handler_error")
    finally:
        if connection:
            try:
                await connection.close()
            except Exception:
                logger.warning("connection_close_failed")
