"""
Tournament lookup tests - groups, teams, games, stadiums and the team name cache.
"""
import asyncio

import pytest
from fastapi.testclient import TestClient

from backend.lookups import TeamNameCache
from backend.server import create_app

TEAMS = [
    {"id": "1", "name_en": "Iran", "name_fa": "ایران", "fifa_code": "IRN", "iso2": "IR", "groups": "G", "flag": ""},
    {"id": "2", "name_en": "Brazil", "name_fa": "برزیل", "fifa_code": "BRA", "iso2": "BR", "groups": "C", "flag": ""},
    {"id": "3", "name_en": "Belgium", "name_fa": "بلژیک", "fifa_code": "BEL", "iso2": "BE", "groups": "G", "flag": ""},
]
GROUPS = [
    {"name": "G", "teams": [{"team_id": "1", "pts": "0"}, {"team_id": "3", "pts": "0"}]},
    {"name": "C", "teams": [{"team_id": "2", "pts": "0"}]},
]
GAMES = [
    {"id": "10", "home_team_id": "1", "away_team_id": "3", "group": "G", "stadium_id": "5", "finished": "FALSE"},
    {"id": "11", "home_team_id": "2", "away_team_id": "99", "group": "C", "stadium_id": "5", "finished": "FALSE"},
]
STADIUMS = [
    {"id": "5", "name_en": "SoFi Stadium", "name_fa": "ورزشگاه سوفای", "city_en": "Los Angeles", "capacity": 70240},
]


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


async def seed(db):
    await db.teams.insert_many([dict(t) for t in TEAMS])
    await db.groups.insert_many([dict(g) for g in GROUPS])
    await db.games.insert_many([dict(g) for g in GAMES])
    await db.stadiums.insert_many([dict(s) for s in STADIUMS])


@pytest.fixture
def lookup_client(settings, db):
    asyncio.run(seed(db))
    with TestClient(create_app(settings, db=db)) as c:
        yield c


class TestTeamNameCache:
    """Time-bounded team name cache"""

    @pytest.mark.asyncio
    async def test_serves_stale_names_within_ttl(self, db):
        await seed(db)
        clock = FakeClock()
        cache = TeamNameCache(ttl=300, clock=clock)
        names = await cache.get(db)
        assert names["1"] == {"name_en": "Iran", "name_fa": "ایران"}

        await db.teams.update_one({"id": "1"}, {"$set": {"name_en": "IR Iran"}})
        clock.now += 299
        assert (await cache.get(db))["1"]["name_en"] == "Iran"

        clock.now += 2
        assert (await cache.get(db))["1"]["name_en"] == "IR Iran"

    @pytest.mark.asyncio
    async def test_invalidate_forces_reload(self, db):
        await seed(db)
        cache = TeamNameCache(ttl=300, clock=FakeClock())
        await cache.get(db)
        await db.teams.insert_one({"id": "4", "name_en": "Japan", "name_fa": "ژاپن"})
        assert "4" not in await cache.get(db)
        cache.invalidate()
        assert "4" in await cache.get(db)


class TestLookupEndpoints:
    """/get/* routes"""

    def test_list_groups(self, lookup_client):
        response = lookup_client.get("/get/groups")
        assert response.status_code == 200
        assert [g["name"] for g in response.json()["groups"]] == ["C", "G"]
        assert "_id" not in response.json()["groups"][0]

    def test_group_with_teams(self, lookup_client):
        response = lookup_client.get("/get/group", params={"name": "g"})
        assert response.status_code == 200
        data = response.json()
        assert data["group"]["name"] == "G"
        assert sorted(t["name_en"] for t in data["teams"]) == ["Belgium", "Iran"]

    def test_group_requires_name(self, lookup_client):
        response = lookup_client.get("/get/group")
        assert response.status_code == 400
        assert response.json()["detail"] == "Error no query declared"

    def test_unknown_group(self, lookup_client):
        assert lookup_client.get("/get/group", params={"name": "Z"}).status_code == 404

    def test_teams_filtered_by_group(self, lookup_client):
        response = lookup_client.get("/get/teams", params={"group": "c"})
        assert [t["name_en"] for t in response.json()["teams"]] == ["Brazil"]
        assert len(lookup_client.get("/get/teams").json()["teams"]) == 3

    def test_team_by_name_capitalises(self, lookup_client):
        response = lookup_client.get("/get/team", params={"name": "brazil"})
        assert response.status_code == 200
        assert response.json()["team"]["fifa_code"] == "BRA"

    def test_team_by_id(self, lookup_client):
        assert lookup_client.get("/get/team/3").json()["team"]["name_en"] == "Belgium"
        assert lookup_client.get("/get/team/404").status_code == 404

    def test_games_carry_team_names(self, lookup_client):
        games = {g["id"]: g for g in lookup_client.get("/get/games").json()["games"]}
        assert games["10"]["home_team_name_en"] == "Iran"
        assert games["10"]["away_team_name_fa"] == "بلژیک"
        assert games["11"]["home_team_name_en"] == "Brazil"
        assert "away_team_name_en" not in games["11"]

    def test_game_by_id(self, lookup_client):
        response = lookup_client.get("/get/game/10")
        assert response.json()["game"]["home_team_name_en"] == "Iran"
        assert lookup_client.get("/get/game/77").status_code == 404

    def test_stadiums(self, lookup_client):
        assert lookup_client.get("/get/stadiums").json()["stadiums"][0]["city_en"] == "Los Angeles"
        assert lookup_client.get("/get/stadium/5").json()["stadium"]["capacity"] == 70240
        assert lookup_client.get("/get/stadium/6").status_code == 404
