"""IBGE localidades API source: the municipal registry."""

from typing import Any

import httpx
from loguru import logger

from electoral_ingest.lib.ingest.errors import RecordError, SourceError
from electoral_ingest.lib.ingest.sources.base import BaseSourceProvider, PhaseCallback, PreparedRecord, SourceRow


def _name(node: Any) -> str | None:
    return node.get("nome") if isinstance(node, dict) else None


def map_municipality(values: dict[str, Any]) -> dict[str, Any]:
    """Map one ``/municipios`` entry to ``municipalities`` column values.

    The state is taken from the micro/mesoregion hierarchy, falling back to
    the immediate/intermediate region hierarchy that newer municipalities
    carry instead.

    Raises:
        RecordError: If the id or name is missing or no state can be resolved.
    """
    code = values.get("id")
    name = values.get("nome")
    if code is None or not name:
        msg = "municipality without id or name"
        raise RecordError(msg, "missing_field")

    microregion = values.get("microrregiao") or {}
    mesoregion = microregion.get("mesorregiao") or {}
    state = mesoregion.get("UF")
    if not state:
        immediate = values.get("regiao-imediata") or {}
        intermediate = immediate.get("regiao-intermediaria") or {}
        state = intermediate.get("UF")
    if not state or not state.get("sigla"):
        msg = f"incomplete locality hierarchy for {name} ({code})"
        raise RecordError(msg, "incomplete_data")

    return {
        "ibge_code": str(code).zfill(7),
        "name": name,
        "uf": state["sigla"],
        "uf_name": state.get("nome") or state["sigla"],
        "region_name": _name(state.get("regiao")) or "Desconhecido",
        "mesoregion": _name(mesoregion),
        "microregion": _name(microregion),
    }


class IbgeMunicipalitySource(BaseSourceProvider):
    """Fetches the municipality list once, then serves it in pages.

    Args:
        base_url: Localidades API base URL.
        uf: Optional state filter; the whole country is fetched when omitted.
        timeout: HTTP timeout in seconds.
    """

    def __init__(self, *, base_url: str, uf: str | None = None, timeout: float = 60.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.uf = uf.upper() if uf else None
        self.timeout = timeout
        self._items: list[dict[str, Any]] | None = None

    @property
    def url(self) -> str:
        if self.uf:
            return f"{self.base_url}/estados/{self.uf}/municipios"
        return f"{self.base_url}/municipios"

    @property
    def source_label(self) -> str:
        return f"IBGE/localidades/{self.uf}" if self.uf else "IBGE/localidades"

    async def prepare(self, on_phase: PhaseCallback) -> None:
        await on_phase("downloading", "Fetching municipalities from the IBGE API")
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self.url)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as e:
            msg = f"IBGE API request failed: {e}"
            raise SourceError(msg) from e
        except ValueError as e:
            msg = f"IBGE API returned invalid JSON: {e}"
            raise SourceError(msg) from e

        if not isinstance(payload, list):
            msg = f"IBGE API returned {type(payload).__name__}, expected a list"
            raise SourceError(msg)
        self._items = payload
        logger.info(f"Fetched {len(payload)} municipalities from {self.url}")

    @property
    def items(self) -> list[dict[str, Any]]:
        if self._items is None:
            msg = "Source not prepared"
            raise RuntimeError(msg)
        return self._items

    async def count(self) -> int:
        return len(self.items)

    async def fetch_page(self, offset: int, limit: int) -> list[SourceRow]:
        page = self.items[offset : offset + limit]
        return [SourceRow(row_number=offset + i + 1, values=item) for i, item in enumerate(page)]

    def to_record(self, row: SourceRow) -> PreparedRecord:
        if not isinstance(row.values, dict):
            msg = "municipality entry is not an object"
            raise RecordError(msg, "parse_error")
        record = map_municipality(row.values)
        return PreparedRecord(
            row_number=row.row_number, values=record, label=f"{record['name']} ({record['ibge_code']})"
        )

    async def close(self) -> None:
        self._items = None
