# backend/timelock/main.py
import asyncio
from datetime import datetime
from typing import List, Tuple, Dict, Any, Optional

from fastapi import (
    FastAPI,
    HTTPException,
    Request,
    status,
    Header,
    WebSocket,
    WebSocketDisconnect,
    Query,
    Depends,
)
from fastapi.responses import JSONResponse

from .config import Settings
from .deps import setup_cors, build_registry, get_registry
from .logger import get_logger
from .models import (
    AccessOut,
    AllowIn,
    AllowOut,
    CreateMessageIn,
    CreateMessageOut,
    ErrorOut,
    EventEnvelope,
    HealthOut,
    MessageSnapshot,
    normalize_address,
)
from .registry import (
    AlreadyGranted,
    InvalidProof,
    InvalidUnlockTime,
    MessageRegistry,
    NotFound,
    RegistryError,
    TooEarly,
    Unauthorized,
)
from .security import (
    ReplayCache,
    address_from_public_key,
    extract_bearer,
    parse_jws_compact,
    verify_times,
    verify_eddsa_with_pub_b64,
)
from .websocket import WSManager

log = get_logger("timelock.api")

ERROR_STATUS = {
    InvalidUnlockTime: status.HTTP_400_BAD_REQUEST,
    InvalidProof: status.HTTP_400_BAD_REQUEST,
    NotFound: status.HTTP_404_NOT_FOUND,
    Unauthorized: status.HTTP_403_FORBIDDEN,
    TooEarly: status.HTTP_425_TOO_EARLY,
    AlreadyGranted: status.HTTP_409_CONFLICT,
}

ERROR_RESPONSES = {code: {"model": ErrorOut} for code in set(ERROR_STATUS.values())}


# -------------------- Auth helper (Authorization: Bearer <JWS>) --------------------
def auth_caller(request: Request, Authorization: str = Header(None)) -> Tuple[str, Dict[str, Any]]:
    settings: Settings = request.app.state.settings
    compact = extract_bearer(Authorization)
    header, payload, sig, signing_input = parse_jws_compact(compact)

    if header.get("alg") != "EdDSA":
        raise HTTPException(status_code=400, detail="alg must be EdDSA")

    kid = (header.get("kid") or "").strip()
    if not kid:
        raise HTTPException(status_code=400, detail="Missing signer key")

    pub = verify_eddsa_with_pub_b64(kid, signing_input, sig)
    caller = address_from_public_key(pub)

    sub = str(payload.get("sub") or "").strip().lower()
    if sub != caller:
        log.warning(f"[AUTH] identity mismatch caller={caller}")
        raise HTTPException(status_code=401, detail="Identity mismatch")

    try:
        iat, exp = int(payload.get("iat", 0)), int(payload.get("exp", 0))
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="Invalid iat/exp")
    now = verify_times(iat, exp, leeway=settings.jws_leeway)
    request.app.state.replay_cache.check(str(payload.get("jti", "")), now, exp)

    return caller, payload


def require_act(payload: Dict[str, Any], *acts: str) -> None:
    if payload.get("act") not in acts:
        raise HTTPException(status_code=400, detail=f"Invalid act, expected {acts[0]}")


def parse_address(value: str) -> str:
    try:
        return normalize_address(value)
    except ValueError:
        raise HTTPException(status_code=422, detail="Invalid address")


def create_app(
    settings: Optional[Settings] = None,
    registry: Optional[MessageRegistry] = None,
    clock=None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    get_logger("timelock", level=settings.log_level, to_file=settings.log_file)

    app = FastAPI(title="Time-Locked Messages", version="1.0.0")
    setup_cors(app, settings.cors_origins)

    app.state.settings = settings
    app.state.registry = registry or build_registry(settings, clock=clock)
    app.state.replay_cache = ReplayCache(ttl_sec=settings.jti_ttl)
    app.state.ws = WSManager()
    app.state.registry.events.subscribe(app.state.ws.notify)

    @app.exception_handler(RegistryError)
    async def registry_error_handler(request: Request, exc: RegistryError):
        code = ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
        return JSONResponse(status_code=code, content={"detail": str(exc), "code": exc.code})

    @app.get("/health", response_model=HealthOut)
    def health(registry: MessageRegistry = Depends(get_registry)):
        return HealthOut(
            status="ok",
            ts=datetime.utcnow().isoformat() + "Z",
            protocol_id=registry.protocol_id(),
            message_count=registry.message_count(),
        )

    # -------------------- Protected: create --------------------
    @app.post(
        "/messages",
        response_model=CreateMessageOut,
        status_code=status.HTTP_201_CREATED,
        responses=ERROR_RESPONSES,
    )
    def create_message(
        body: CreateMessageIn,
        auth=Depends(auth_caller),
        registry: MessageRegistry = Depends(get_registry),
    ):
        caller, payload = auth
        require_act(payload, "messages.create", "create")
        message_id = registry.create(
            caller,
            body.title,
            body.encrypted_content,
            body.encrypted_recipient,
            body.input_proof,
            body.unlock_timestamp,
        )
        return CreateMessageOut(id=message_id)

    # -------------------- Protected: allow --------------------
    @app.post("/messages/{message_id}/allow", response_model=AllowOut, responses=ERROR_RESPONSES)
    def allow_recipient(
        message_id: int,
        body: AllowIn,
        auth=Depends(auth_caller),
        registry: MessageRegistry = Depends(get_registry),
    ):
        caller, payload = auth
        require_act(payload, "messages.allow", "allow")
        registry.allow(caller, message_id, body.recipient)
        return AllowOut(allowed=True)

    # -------------------- Public reads --------------------
    @app.get("/messages/{message_id}", response_model=MessageSnapshot, responses=ERROR_RESPONSES)
    def get_message(message_id: int, registry: MessageRegistry = Depends(get_registry)):
        return registry.get_message(message_id)

    @app.get("/messages/{message_id}/access/{address}", response_model=AccessOut, responses=ERROR_RESPONSES)
    def get_access(message_id: int, address: str, registry: MessageRegistry = Depends(get_registry)):
        address = parse_address(address)
        return AccessOut(
            message_id=message_id,
            address=address,
            can_decrypt=registry.can_decrypt(message_id, address),
        )

    @app.get("/creators/{address}/message-ids", response_model=List[int])
    def get_message_ids(address: str, registry: MessageRegistry = Depends(get_registry)):
        return registry.get_message_ids_by_creator(parse_address(address))

    @app.get("/creators/{address}/messages", response_model=List[MessageSnapshot])
    def get_messages(address: str, registry: MessageRegistry = Depends(get_registry)):
        return registry.get_messages_by_creator(parse_address(address))

    @app.get("/events", response_model=List[EventEnvelope])
    def list_events(since: int = Query(0, ge=0), registry: MessageRegistry = Depends(get_registry)):
        return registry.events.since(since)

    # -------------------- WebSocket: /ws/events?since=<seq> --------------------
    @app.websocket("/ws/events")
    async def ws_events(ws: WebSocket, since: Optional[int] = Query(None, ge=0)):
        manager: WSManager = ws.app.state.ws
        registry: MessageRegistry = ws.app.state.registry

        async def drain():
            # returns once the client goes away; other frames are keepalives
            while True:
                message = await ws.receive()
                if message["type"] == "websocket.disconnect":
                    return

        pending = []
        try:
            # subscribe before accepting so nothing emitted after the handshake is missed
            queue = manager.connect(ws)
            await ws.accept()

            # events below `since` are never sent, replayed or live
            last_seq = None if since is None else since - 1
            if since is not None:
                for entry in registry.events.since(since):
                    await ws.send_json(entry.model_dump(mode="json"))
                    last_seq = entry.seq

            pending = [
                asyncio.ensure_future(manager.stream(ws, queue, last_seq)),
                asyncio.ensure_future(drain()),
            ]
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                exc = task.exception()
                if exc and not isinstance(exc, WebSocketDisconnect):
                    raise exc
        except WebSocketDisconnect:
            pass
        except Exception:
            log.exception("[WS] event stream failed")
            try:
                await ws.close(code=1011)
            except Exception:
                pass
        finally:
            for task in pending:
                task.cancel()
            manager.disconnect(ws)

    return app


app = create_app()
