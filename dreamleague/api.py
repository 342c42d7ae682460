"""
REST API for the DreamLeague jornada engine.
Thin wrappers around the services; AppErrors become {code, message} HTTP errors.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager, contextmanager
from pathlib import Path
from typing import Any, AsyncGenerator, Generator

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

# Ensure project root on path
import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from dreamleague.auth import cron_token_matches, decode_token, is_admin
from dreamleague.config import Settings, configure_logging, get_settings
from dreamleague.errors import AppError, AuthError, ForbiddenError, GatewayError
from dreamleague.gateway import FootballApiClient
from dreamleague.persistence import get_connection, get_db_path, init_db
from dreamleague.services import BetService, CombiService, JornadaService, PlayerStatsService

logger = logging.getLogger(__name__)


@contextmanager
def db_conn() -> Generator:
    """Yield a DB connection, ensure close on exit."""
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def service_errors() -> Generator:
    """Translate domain errors raised inside the block into HTTP errors."""
    try:
        yield
    except AppError as e:
        if e.status_code >= 500:
            logger.error("%s: %s", e.code, e.message)
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())


# ---------- Lifespan ----------
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    configure_logging()
    init_db(db_path=get_db_path())
    settings = get_settings()
    # One football API client per process, shared by every request
    if settings.football_api_key:
        app.state.gateway = FootballApiClient(settings)
    else:
        logger.warning("FOOTBALL_API_KEY is not set; routes that need football data will fail")
        app.state.gateway = None
    yield
    if app.state.gateway is not None:
        app.state.gateway.close()
    app.state.gateway = None


# ---------- FastAPI app ----------
app = FastAPI(
    title="DreamLeague API",
    description="Jornada lifecycle, bet settlement and fantasy scoring",
    version="0.1.0",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------- Dependencies ----------

security = HTTPBearer(auto_error=False)


def get_gateway(request: Request) -> Any:
    """Football API client built at startup."""
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        err = GatewayError("Missing football API key. Set FOOTBALL_API_KEY.", code="FOOTBALL_API_NOT_CONFIGURED")
        raise HTTPException(status_code=err.status_code, detail=err.to_dict())
    return gateway


def _claims(credentials: HTTPAuthorizationCredentials | None) -> dict[str, Any] | None:
    if credentials is None:
        return None
    return decode_token(credentials.credentials)


def _require_user_id(credentials: HTTPAuthorizationCredentials | None = Depends(security)) -> str:
    claims = _claims(credentials)
    if not claims or not claims.get("sub"):
        err = AuthError("Login required")
        raise HTTPException(status_code=err.status_code, detail=err.to_dict())
    return str(claims["sub"])


def _require_admin(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    x_cron_token: str | None = Header(None, alias="X-Cron-Token"),
    settings: Settings = Depends(get_settings),
) -> None:
    """Admin bearer token or the cron token header."""
    if cron_token_matches(x_cron_token, settings.cron_token):
        return
    claims = _claims(credentials)
    if claims is None:
        err = AuthError("Admin token or cron token required")
        raise HTTPException(status_code=err.status_code, detail=err.to_dict())
    if not is_admin(claims):
        err = ForbiddenError("Admin role required")
        raise HTTPException(status_code=err.status_code, detail=err.to_dict())


def _jornada_service(
    gateway: Any = Depends(get_gateway),
    settings: Settings = Depends(get_settings),
) -> JornadaService:
    return JornadaService(gateway, settings)


# ---------- Request models ----------


class JornadaRequest(BaseModel):
    jornada: int = Field(..., description="Matchday number, 1-38")


class PlaceBetRequest(BaseModel):
    match_id: int
    bet_type: str = Field(..., min_length=1)
    bet_label: str = Field(..., min_length=1)
    odd: float
    amount: int


class UpdateBetRequest(BaseModel):
    amount: int


class CombiSelectionRequest(BaseModel):
    match_id: int
    bet_type: str = Field(..., min_length=1)
    bet_label: str = Field(..., min_length=1)
    odd: float


class CreateCombiRequest(BaseModel):
    selections: list[CombiSelectionRequest]
    amount: int


# ---------- Jornada (admin) ----------


@app.post("/jornada/reset/{league_id}", dependencies=[Depends(_require_admin)])
def reset_jornada(league_id: str, req: JornadaRequest, svc: JornadaService = Depends(_jornada_service)) -> dict[str, Any]:
    """Settle the jornada for one league: bets, squad points, budgets, squad clearing, purge."""
    with db_conn() as conn, service_errors():
        return svc.reset_jornada(conn, league_id, req.jornada)


@app.post("/jornada/reset-all", dependencies=[Depends(_require_admin)])
def reset_all(req: JornadaRequest, svc: JornadaService = Depends(_jornada_service)) -> dict[str, Any]:
    with db_conn() as conn, service_errors():
        return svc.reset_all_leagues(conn, req.jornada)


# Path names kept from the mobile client: "open" locks, "close" unlocks.
@app.post("/jornada/open/{league_id}", dependencies=[Depends(_require_admin)])
def lock_jornada(league_id: str, svc: JornadaService = Depends(_jornada_service)) -> dict[str, Any]:
    with db_conn() as conn, service_errors():
        svc.lock_jornada(conn, league_id)
        return svc.get_jornada_status(conn, league_id)


@app.post("/jornada/close/{league_id}", dependencies=[Depends(_require_admin)])
def unlock_jornada(league_id: str, svc: JornadaService = Depends(_jornada_service)) -> dict[str, Any]:
    with db_conn() as conn, service_errors():
        svc.unlock_jornada(conn, league_id)
        return svc.get_jornada_status(conn, league_id)


@app.post("/jornada/open-all", dependencies=[Depends(_require_admin)])
def lock_all(svc: JornadaService = Depends(_jornada_service)) -> dict[str, Any]:
    with db_conn() as conn, service_errors():
        return svc.lock_all(conn)


@app.post("/jornada/close-all", dependencies=[Depends(_require_admin)])
def unlock_all(svc: JornadaService = Depends(_jornada_service)) -> dict[str, Any]:
    with db_conn() as conn, service_errors():
        return svc.unlock_all(conn)


@app.post("/jornada/advance/{league_id}", dependencies=[Depends(_require_admin)])
def advance_jornada(league_id: str, svc: JornadaService = Depends(_jornada_service)) -> dict[str, Any]:
    """Settle the current jornada, move to the next and unlock."""
    with db_conn() as conn, service_errors():
        return svc.advance_jornada(conn, league_id)


@app.get("/jornada/status/{league_id}")
def jornada_status(league_id: str, settings: Settings = Depends(get_settings)) -> dict[str, Any]:
    # Status needs no football API access
    svc = JornadaService(gateway=None, settings=settings)
    with db_conn() as conn, service_errors():
        return svc.get_jornada_status(conn, league_id)


# ---------- Bets ----------


@app.get("/bets/realtime/{league_id}/{jornada}")
def realtime_bets(
    league_id: str,
    jornada: int,
    user_id: str = Depends(_require_user_id),
    svc: JornadaService = Depends(_jornada_service),
) -> dict[str, Any]:
    """Read-only evaluation of the jornada's bets against current results."""
    with db_conn() as conn, service_errors():
        return {"leagueId": league_id, "jornada": jornada, "bets": svc.preview_bets(conn, league_id, jornada)}


@app.post("/bets/{league_id}")
def place_bet(
    league_id: str,
    req: PlaceBetRequest,
    user_id: str = Depends(_require_user_id),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    with db_conn() as conn, service_errors():
        bet = BetService(settings).place_bet(
            conn, league_id, user_id, req.match_id, req.bet_type, req.bet_label, req.odd, req.amount
        )
        return bet.to_dict()


@app.get("/bets/{league_id}")
def list_my_bets(
    league_id: str,
    jornada: int | None = Query(None, description="Only bets of this jornada"),
    user_id: str = Depends(_require_user_id),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    with db_conn() as conn, service_errors():
        svc = BetService(settings)
        return {
            "bets": svc.list_user_bets(conn, league_id, user_id, jornada),
            "budget": svc.available_budget(conn, league_id, user_id),
        }


@app.patch("/bets/{league_id}/{bet_id}")
def update_bet(
    league_id: str,
    bet_id: str,
    req: UpdateBetRequest,
    user_id: str = Depends(_require_user_id),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    with db_conn() as conn, service_errors():
        return BetService(settings).update_bet_amount(conn, league_id, user_id, bet_id, req.amount).to_dict()


@app.delete("/bets/{league_id}/{bet_id}")
def delete_bet(
    league_id: str,
    bet_id: str,
    user_id: str = Depends(_require_user_id),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    with db_conn() as conn, service_errors():
        BetService(settings).delete_bet(conn, league_id, user_id, bet_id)
        return {"deleted": True, "betId": bet_id}


# ---------- Combis ----------


@app.post("/bet-combis/{league_id}")
def create_combi(
    league_id: str,
    req: CreateCombiRequest,
    user_id: str = Depends(_require_user_id),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    with db_conn() as conn, service_errors():
        combi = CombiService(settings).create_combi(
            conn, league_id, user_id, [s.model_dump() for s in req.selections], req.amount
        )
        return combi.to_dict()


@app.post("/bet-combis/{combi_id}/selections")
def add_combi_selection(
    combi_id: str,
    req: CombiSelectionRequest,
    user_id: str = Depends(_require_user_id),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    with db_conn() as conn, service_errors():
        return CombiService(settings).add_selection(conn, combi_id, user_id, req.model_dump()).to_dict()


@app.delete("/bet-combis/{combi_id}/selections/{bet_id}")
def remove_combi_selection(
    combi_id: str,
    bet_id: str,
    user_id: str = Depends(_require_user_id),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    with db_conn() as conn, service_errors():
        combi = CombiService(settings).remove_selection(conn, combi_id, user_id, bet_id)
        if combi is None:
            return {"deleted": True, "combiId": combi_id}
        return {"deleted": False, "combi": combi.to_dict()}


@app.post("/bet-combis/{combi_id}/evaluate")
def evaluate_combi(
    combi_id: str,
    user_id: str = Depends(_require_user_id),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    with db_conn() as conn, service_errors():
        return CombiService(settings).evaluate_combi(conn, combi_id).to_dict()


# ---------- Player stats ----------


@app.get("/player-stats/{player_id}/jornada/{jornada}")
def player_jornada_stats(
    player_id: int,
    jornada: int,
    refresh: bool = Query(False, description="Recompute from the football API"),
    season: int | None = Query(None),
    gateway: Any = Depends(get_gateway),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    with db_conn() as conn, service_errors():
        record = PlayerStatsService(gateway, settings).get_or_compute(
            conn, player_id, jornada, season, force_refresh=refresh
        )
        return record.to_dict()


@app.post("/player-stats/update-jornada", dependencies=[Depends(_require_admin)])
def update_jornada_stats(
    req: JornadaRequest,
    gateway: Any = Depends(get_gateway),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    with db_conn() as conn, service_errors():
        return PlayerStatsService(gateway, settings).update_all_players_for_jornada(conn, req.jornada)


# ---------- Run with: uvicorn dreamleague.api:app --reload ----------
