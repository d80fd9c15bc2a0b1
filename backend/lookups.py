import logging
import time
from typing import Callable, Dict, Optional

from fastapi import APIRouter, HTTPException, Request

logger = logging.getLogger(__name__)

lookup_router = APIRouter(prefix="/get")


class TeamNameCache:
    """Team id -> {name_en, name_fa}, reloaded once older than ``ttl`` seconds.

    Reads inside the window may be stale; team names are seeded offline and
    rarely change.
    """

    def __init__(self, ttl: float = 300.0, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._names: Optional[Dict[str, Dict[str, str]]] = None
        self._loaded_at = 0.0

    def invalidate(self):
        self._names = None

    async def get(self, db) -> Dict[str, Dict[str, str]]:
        now = self._clock()
        if self._names is not None and now - self._loaded_at < self.ttl:
            return self._names
        teams = await db.teams.find({}, {"_id": 0, "id": 1, "name_en": 1, "name_fa": 1}).to_list(None)
        self._names = {t["id"]: {"name_en": t.get("name_en"), "name_fa": t.get("name_fa")} for t in teams if t.get("id")}
        self._loaded_at = now
        logger.debug(f"Team name cache loaded ({len(self._names)} teams)")
        return self._names


def _with_team_names(game: dict, names: Dict[str, Dict[str, str]]) -> dict:
    for side in ("home", "away"):
        team = names.get(game.get(f"{side}_team_id"))
        if team:
            game[f"{side}_team_name_en"] = team["name_en"]
            game[f"{side}_team_name_fa"] = team["name_fa"]
    return game


# ─── Group Endpoints ───

@lookup_router.get("/groups")
async def list_groups(request: Request):
    db = request.app.state.db
    groups = await db.groups.find({}, {"_id": 0}, sort=[("name", 1)]).to_list(None)
    return {"groups": groups}

@lookup_router.get("/group")
async def get_group(request: Request, name: Optional[str] = None):
    if not name:
        raise HTTPException(400, "Error no query declared")
    db = request.app.state.db
    group_name = name.strip().upper()
    group = await db.groups.find_one({"name": group_name}, {"_id": 0})
    if not group:
        raise HTTPException(404, f"Group not found with name: {name}")
    teams = await db.teams.find({"groups": group_name}, {"_id": 0}).to_list(None)
    return {"group": group, "teams": teams}

# ─── Team Endpoints ───

@lookup_router.get("/teams")
async def list_teams(request: Request, group: Optional[str] = None):
    db = request.app.state.db
    query = {}
    if group:
        query["groups"] = group.strip().upper()
    teams = await db.teams.find(query, {"_id": 0}).to_list(None)
    return {"teams": teams}

@lookup_router.get("/team")
async def get_team_by_name(request: Request, name: Optional[str] = None):
    if not name:
        raise HTTPException(400, "Error no query declared")
    db = request.app.state.db
    name = name.strip()
    team = await db.teams.find_one({"name_en": name[:1].upper() + name[1:]}, {"_id": 0})
    if not team:
        raise HTTPException(404, f"Team not found with name: {name}")
    return {"team": team}

@lookup_router.get("/team/{team_id}")
async def get_team(request: Request, team_id: str):
    team = await request.app.state.db.teams.find_one({"id": team_id}, {"_id": 0})
    if not team:
        raise HTTPException(404, f"Team not found with id: {team_id}")
    return {"team": team}

# ─── Game Endpoints ───

@lookup_router.get("/games")
async def list_games(request: Request):
    db = request.app.state.db
    games = await db.games.find({}, {"_id": 0}).to_list(None)
    names = await request.app.state.team_cache.get(db)
    return {"games": [_with_team_names(g, names) for g in games]}

@lookup_router.get("/game/{game_id}")
async def get_game(request: Request, game_id: str):
    db = request.app.state.db
    game = await db.games.find_one({"id": game_id}, {"_id": 0})
    if not game:
        raise HTTPException(404, f"Game not found with id: {game_id}")
    names = await request.app.state.team_cache.get(db)
    return {"game": _with_team_names(game, names)}

# ─── Stadium Endpoints ───

@lookup_router.get("/stadiums")
async def list_stadiums(request: Request):
    stadiums = await request.app.state.db.stadiums.find({}, {"_id": 0}).to_list(None)
    return {"stadiums": stadiums}

@lookup_router.get("/stadium/{stadium_id}")
async def get_stadium(request: Request, stadium_id: str):
    stadium = await request.app.state.db.stadiums.find_one({"id": stadium_id}, {"_id": 0})
    if not stadium:
        raise HTTPException(404, f"Stadium not found with id: {stadium_id}")
    return {"stadium": stadium}
