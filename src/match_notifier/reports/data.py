"""Match report data fetched from the data store for the /main page."""

import asyncio
from typing import Any

import httpx
import structlog
from postgrest.exceptions import APIError

logger = structlog.get_logger(__name__)

INFO_COLUMNS = (
    "lcg_game_id, lcg_ver_main, lcg_game_duration, lcg_max_gold, lcg_max_crowd, "
    "lcg_max_dpm, lcg_max_gpm, lcg_max_dpg, lcg_max_damage_total, lcg_max_damage_taken"
)
ETC_COLUMNS = (
    "lcg_cdn, lcg_lang, lcg_main_ver, lcg_main_image, lcg_sub_image, "
    "lcg_update_player, lcg_update_data"
)
PLAYER_COLUMNS = (
    "lcg_summoner_puuid, lcg_player, lcg_summoner_name, lcg_summoner_nickname, lcg_player_hide"
)


class ReportRepository:
    """Reads every table the match report page needs.

    A failed query is logged and treated as returning no rows, so one
    broken table degrades the page instead of failing it.
    """

    def __init__(self, client: Any, game_id: int) -> None:
        """Initialize the repository.

        Args:
            client: Supabase async client
            game_id: Match the report is rendered for
        """
        self._client = client
        self.game_id = game_id

    async def _fetch(self, table: str, query: Any) -> list[dict[str, Any]]:
        try:
            response = await query.execute()
        except (APIError, httpx.HTTPError) as e:
            logger.error("report_query_failed", table=table, error=str(e))
            return []
        return list(response.data or [])

    def _for_game(self, table: str, columns: str = "*") -> Any:
        return self._client.table(table).select(columns).eq("lcg_game_id", self.game_id)

    async def get_log_data(self) -> list[dict[str, Any]]:
        return await self._fetch("lcg_match_log", self._for_game("lcg_match_log"))

    async def get_info_data(self) -> list[dict[str, Any]]:
        return await self._fetch("lcg_match_info", self._for_game("lcg_match_info", INFO_COLUMNS))

    async def get_etc_data(self) -> list[dict[str, Any]]:
        query = (
            self._client.table("lcg_match_etc")
            .select(ETC_COLUMNS)
            .order("lcg_update_date", desc=True)
            .limit(1)
        )
        return await self._fetch("lcg_match_etc", query)

    async def get_team_data(self) -> list[dict[str, Any]]:
        return await self._fetch("lcg_match_team", self._for_game("lcg_match_team"))

    async def get_main_data(self) -> list[dict[str, Any]]:
        return await self._fetch("lcg_match_main", self._for_game("lcg_match_main"))

    async def get_sub_data(self) -> list[dict[str, Any]]:
        return await self._fetch("lcg_match_sub", self._for_game("lcg_match_sub"))

    async def get_player_data(self) -> list[dict[str, Any]]:
        query = self._client.table("lcg_player_data").select(PLAYER_COLUMNS)
        return await self._fetch("lcg_player_data", query)

    async def load(self) -> dict[str, list[dict[str, Any]]]:
        """Fetch all report tables concurrently."""
        names = ("log", "info", "etc", "team", "main", "sub", "player")
        results = await asyncio.gather(
            self.get_log_data(),
            self.get_info_data(),
            self.get_etc_data(),
            self.get_team_data(),
            self.get_main_data(),
            self.get_sub_data(),
            self.get_player_data(),
        )
        return dict(zip(names, results))


def game_duration_minutes(duration: int) -> int:
    """Whole minutes of a game, rounding up when more than 30 seconds remain."""
    minutes, seconds = divmod(duration, 60)
    if seconds > 30:
        minutes += 1
    return minutes


def build_report_context(data: dict[str, list[dict[str, Any]]]) -> dict[str, Any]:
    """Turn raw report rows into the template context.

    Returns a context with ``ready`` set to False when the match log or
    match info rows are missing.
    """
    log_rows = data.get("log") or []
    info_rows = data.get("info") or []
    etc_rows = data.get("etc") or []
    players = data.get("player") or []

    context: dict[str, Any] = {
        "ready": bool(log_rows and info_rows),
        "team_data": data.get("team") or [],
        "main_data": data.get("main") or [],
        "sub_data": data.get("sub") or [],
        "player_data": players,
        "player_names": {
            p.get("lcg_summoner_puuid"): (
                p.get("lcg_summoner_nickname") or p.get("lcg_summoner_name") or p.get("lcg_player")
            )
            for p in players
            if not p.get("lcg_player_hide")
        },
    }

    if etc_rows:
        context["image_url_1"] = etc_rows[0].get("lcg_main_image")
        context["image_url_2"] = etc_rows[0].get("lcg_sub_image")

    if not context["ready"]:
        return context

    log = log_rows[0]
    info = info_rows[0]
    duration = int(info.get("lcg_game_duration") or 0)
    context.update(
        game_date=str(log.get("lcg_game_date") or "")[:10],
        game_version=log.get("lcg_game_ver"),
        duration_min=game_duration_minutes(duration),
        duration_sec=f"{duration % 60:02d}",
        max_damage_total=info.get("lcg_max_damage_total"),
        max_damage_taken=info.get("lcg_max_damage_taken"),
    )
    return context
