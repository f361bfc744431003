from fastapi import WebSocket


class ConnectionManager:
    def __init__(self):
        self.user_connections: dict[int, list[WebSocket]] = {}
        self.ward_connections: dict[int, list[WebSocket]] = {}

    async def connect_user(self, user_id: int, ws: WebSocket):
        await ws.accept()
        self.user_connections.setdefault(user_id, []).append(ws)

    def disconnect_user(self, user_id: int, ws: WebSocket):
        conns = self.user_connections.get(user_id, [])
        if ws in conns:
            conns.remove(ws)
        if not conns and user_id in self.user_connections:
            del self.user_connections[user_id]

    async def send_user(self, user_id: int, data: dict):
        for ws in list(self.user_connections.get(user_id, [])):
            try:
                await ws.send_json(data)
            except Exception:
                self.disconnect_user(user_id, ws)

    async def connect_ward(self, ward_id: int, ws: WebSocket):
        await ws.accept()
        self.ward_connections.setdefault(ward_id, []).append(ws)

    def disconnect_ward(self, ward_id: int, ws: WebSocket):
        conns = self.ward_connections.get(ward_id, [])
        if ws in conns:
            conns.remove(ws)
        if not conns and ward_id in self.ward_connections:
            del self.ward_connections[ward_id]

    async def broadcast_ward(self, ward_id: int, data: dict):
        for ws in list(self.ward_connections.get(ward_id, [])):
            try:
                await ws.send_json(data)
            except Exception:
                self.disconnect_ward(ward_id, ws)


manager = ConnectionManager()
