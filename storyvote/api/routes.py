from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError

from storyvote.api.deps import get_catalog, get_lobby, get_registry
from storyvote.api.models import (
    ChatEntry,
    ChatRequest,
    GameCreateRequest,
    GameIdResponse,
    GameListResponse,
    GameView,
    JoinableListResponse,
    JoinRequest,
    JoinResponse,
    StoryListResponse,
    StorySummary,
    TodoEntry,
    TodoRequest,
    VoteRequest,
    WsCommand,
)
from storyvote.channels import LOBBY_CHANNEL, ChannelBroker, game_channel
from storyvote.errors import GameError
from storyvote.game_registry import GameRegistry
from storyvote.lobby import Lobby
from storyvote.realtime import ConnectionClosed, QueuedWebSocketConnection
from storyvote.stories import StoryCatalog

router = APIRouter()

# Custom close code for "no such game" on the per-game socket.
WS_CLOSE_GAME_NOT_FOUND = 4404


def _http_error(e: GameError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/stories", response_model=StoryListResponse)
async def list_stories_route(catalog: StoryCatalog = Depends(get_catalog)) -> StoryListResponse:
    return StoryListResponse(
        stories=[StorySummary(id=s.id, title=s.title, scene_count=len(s.scenes)) for s in catalog.stories()]
    )


@router.post("/games", response_model=GameIdResponse, status_code=status.HTTP_201_CREATED)
async def create_game_route(
    payload: GameCreateRequest | None = None,
    registry: GameRegistry = Depends(get_registry),
    catalog: StoryCatalog = Depends(get_catalog),
) -> GameIdResponse:
    try:
        story = catalog.load_story(payload.story_id if payload else None)
    except GameError as e:
        raise _http_error(e) from e

    return GameIdResponse(game_id=registry.create_game(story))


@router.get("/games", response_model=GameListResponse)
async def list_games_route(registry: GameRegistry = Depends(get_registry)) -> GameListResponse:
    return GameListResponse(games=registry.list_games())


@router.get("/games/joinable", response_model=JoinableListResponse)
async def list_joinable_games_route(registry: GameRegistry = Depends(get_registry)) -> JoinableListResponse:
    return JoinableListResponse(games=registry.list_joinable_games())


@router.get("/games/{game_id}", response_model=GameView)
async def get_game_route(game_id: str, registry: GameRegistry = Depends(get_registry)) -> GameView:
    try:
        return registry.view_game(game_id)
    except GameError as e:
        raise _http_error(e) from e


@router.delete("/games/{game_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_game_route(game_id: str, registry: GameRegistry = Depends(get_registry)) -> Response:
    registry.remove_game(game_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/games/{game_id}/join", response_model=JoinResponse)
async def join_game_route(
    game_id: str,
    payload: JoinRequest,
    registry: GameRegistry = Depends(get_registry),
) -> JoinResponse:
    try:
        result = registry.join_game(game_id, payload.name)
    except GameError as e:
        raise _http_error(e) from e

    return JoinResponse(game_id=result.game_id, player_id=result.player_id)


@router.post("/games/{game_id}/vote", response_model=GameView)
async def vote_route(
    game_id: str,
    payload: VoteRequest,
    registry: GameRegistry = Depends(get_registry),
) -> GameView:
    try:
        return registry.cast_vote(game_id, payload.player_id, payload.choice_id)
    except GameError as e:
        raise _http_error(e) from e


@router.get("/lobby")
async def lobby_route() -> dict[str, str]:
    return {"status": "ok", "channel": LOBBY_CHANNEL}


@router.get("/lobby/chat", response_model=list[ChatEntry])
async def chat_log_route(limit: int | None = None, lobby: Lobby = Depends(get_lobby)) -> list[ChatEntry]:
    if limit is not None and (limit < 1 or limit > 500):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="limit must be 1..500")
    return lobby.chat_log(limit=limit)


@router.post("/lobby/chat", response_model=ChatEntry, status_code=status.HTTP_201_CREATED)
async def post_chat_route(payload: ChatRequest, lobby: Lobby = Depends(get_lobby)) -> ChatEntry:
    return lobby.post_chat(payload.author, payload.text)


@router.get("/lobby/todo", response_model=list[TodoEntry])
async def todo_list_route(lobby: Lobby = Depends(get_lobby)) -> list[TodoEntry]:
    return lobby.todos()


@router.post("/lobby/todo", response_model=TodoEntry, status_code=status.HTTP_201_CREATED)
async def add_todo_route(payload: TodoRequest, lobby: Lobby = Depends(get_lobby)) -> TodoEntry:
    return lobby.add_todo(payload.text)


async def _serve_socket(websocket: WebSocket, *, channel: str) -> None:
    """Register the socket with the broker and process client commands until it closes.

    Client frames are JSON commands:
      {"action": "subscribe", "channel": "..."}
      {"action": "unsubscribe", "channel": "..."}   (no channel => all)
      {"action": "ping"}
    """

    broker: ChannelBroker = websocket.app.state.broker
    conn = QueuedWebSocketConnection(websocket, outbox_size=websocket.app.state.settings.outbox_size)
    broker.add_connection(conn)
    broker.subscribe(conn.connection_id, channel)
    conn.start()
    conn.deliver({"type": "subscribed", "data": {"channel": channel, "connection_id": conn.connection_id}})

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                cmd = WsCommand.model_validate_json(raw)
            except ValidationError:
                conn.deliver({"type": "error", "data": {"detail": "invalid command"}})
                continue

            if cmd.action == "ping":
                conn.deliver({"type": "pong", "data": {}})
            elif cmd.action == "subscribe":
                if not cmd.channel:
                    conn.deliver({"type": "error", "data": {"detail": "channel is required"}})
                    continue
                broker.subscribe(conn.connection_id, cmd.channel)
                conn.deliver({"type": "subscribed", "data": {"channel": cmd.channel}})
            else:
                broker.unsubscribe(conn.connection_id, cmd.channel)
                conn.deliver({"type": "unsubscribed", "data": {"channel": cmd.channel}})
    except (WebSocketDisconnect, ConnectionClosed):
        pass
    finally:
        broker.remove_connection(conn.connection_id)
        await conn.close()


@router.websocket("/ws")
async def lobby_ws(websocket: WebSocket) -> None:
    await websocket.accept()
    await _serve_socket(websocket, channel=LOBBY_CHANNEL)


@router.websocket("/ws/games/{game_id}")
async def game_ws(websocket: WebSocket, game_id: str) -> None:
    await websocket.accept()
    registry: GameRegistry = websocket.app.state.registry
    if not registry.has_game(game_id):
        await websocket.close(code=WS_CLOSE_GAME_NOT_FOUND)
        return
    await _serve_socket(websocket, channel=game_channel(game_id))
