# Services module
from app.services.websocket_manager import manager, ConnectionManager
