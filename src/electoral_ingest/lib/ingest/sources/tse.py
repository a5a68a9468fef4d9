"""TSE "votação nominal por município e zona" CSV source.

Reads the Superior Electoral Court (TSE) candidate vote files: ``;``
delimited, Latin-1 encoded, with ``#NULO``/``#NE`` as null markers. The
file may be given as a local CSV, a local ZIP archive, or a URL to a ZIP
published on the TSE open data portal.
"""

import asyncio
import shutil
import uuid
import zipfile
from collections.abc import Iterator
from itertools import islice
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import httpx
import pandas as pd
from dateutil.parser import parse as parse_date
from loguru import logger

from electoral_ingest.lib.ingest.errors import RecordError, SourceError
from electoral_ingest.lib.ingest.sources.base import BaseSourceProvider, PhaseCallback, PreparedRecord, SourceRow

# TSE header → candidate_votes column
TSE_COLUMN_MAP: dict[str, str] = {
    "DT_GERACAO": "generated_date",
    "ANO_ELEICAO": "election_year",
    "CD_TIPO_ELEICAO": "election_type_code",
    "NM_TIPO_ELEICAO": "election_type_name",
    "NR_TURNO": "round",
    "CD_ELEICAO": "election_code",
    "DS_ELEICAO": "election_description",
    "DT_ELEICAO": "election_date",
    "TP_ABRANGENCIA": "scope",
    "SG_UF": "uf",
    "SG_UE": "electoral_unit_code",
    "NM_UE": "electoral_unit_name",
    "CD_MUNICIPIO": "municipality_code",
    "NM_MUNICIPIO": "municipality_name",
    "NR_ZONA": "zone",
    "CD_CARGO": "office_code",
    "DS_CARGO": "office_description",
    "SQ_CANDIDATO": "candidate_sequence",
    "NR_CANDIDATO": "candidate_number",
    "NM_CANDIDATO": "candidate_name",
    "NM_URNA_CANDIDATO": "ballot_name",
    "CD_SITUACAO_CANDIDATURA": "candidacy_status_code",
    "DS_SITUACAO_CANDIDATURA": "candidacy_status",
    "NR_PARTIDO": "party_number",
    "SG_PARTIDO": "party_abbreviation",
    "NM_PARTIDO": "party_name",
    "NM_COLIGACAO": "coalition_name",
    "ST_VOTO_EM_TRANSITO": "transit_vote",
    "QT_VOTOS_NOMINAIS": "nominal_votes",
    "QT_VOTOS_NOMINAIS_VALIDOS": "valid_nominal_votes",
    "CD_SIT_TOT_TURNO": "result_code",
    "DS_SIT_TOT_TURNO": "result_description",
}

INTEGER_FIELDS = frozenset(
    {
        "election_year",
        "election_type_code",
        "round",
        "election_code",
        "municipality_code",
        "zone",
        "office_code",
        "candidate_number",
        "candidacy_status_code",
        "party_number",
        "nominal_votes",
        "valid_nominal_votes",
        "result_code",
    }
)

# dd/mm/yyyy cells stored as ISO dates
DATE_FIELDS = frozenset({"generated_date", "election_date"})

# Columns of the natural key that must be present on every row
REQUIRED_FIELDS = (
    "election_year",
    "election_code",
    "round",
    "uf",
    "municipality_code",
    "zone",
    "office_code",
    "candidate_number",
)

NULL_MARKERS = frozenset({"", "#NULO", "#NULO#", "#NE", "#NE#"})

_REQUIRED_HEADERS = ("ANO_ELEICAO", "NR_CANDIDATO")

TSE_DELIMITER = ";"
TSE_ENCODING = "latin-1"


def parse_value(raw: Any, *, integer: bool = False) -> Any:
    """Normalize one TSE cell.

    Args:
        raw: Raw cell text.
        integer: Parse the cell as an integer.

    Returns:
        ``None`` for null markers, otherwise the stripped text or its integer value.

    Raises:
        RecordError: If an integer cell holds something else.
    """
    if raw is None:
        return None
    value = str(raw).strip()
    if value.upper() in NULL_MARKERS:
        return None
    if not integer:
        return value
    try:
        return int(value)
    except ValueError:
        msg = f"invalid integer value {value!r}"
        raise RecordError(msg, "parse_error") from None


def parse_date_value(value: str | None) -> str | None:
    """Normalize a day-first TSE date (``dd/mm/yyyy``) to ``yyyy-mm-dd``.

    Raises:
        RecordError: If the cell is not a date.
    """
    if value is None:
        return None
    try:
        return parse_date(value, dayfirst=True).date().isoformat()
    except (ValueError, OverflowError):
        msg = f"invalid date value {value!r}"
        raise RecordError(msg, "parse_error") from None


def map_candidate_vote(values: dict[str, Any]) -> dict[str, Any]:
    """Map a raw TSE row to ``candidate_votes`` column values.

    Raises:
        RecordError: If a cell cannot be parsed or a key column is missing.
    """
    record: dict[str, Any] = {}
    for header, column in TSE_COLUMN_MAP.items():
        try:
            record[column] = parse_value(values.get(header), integer=column in INTEGER_FIELDS)
            if column in DATE_FIELDS:
                record[column] = parse_date_value(record[column])
        except RecordError as e:
            msg = f"{header}: {e}"
            raise RecordError(msg, e.error_type) from None

    if record["uf"]:
        record["uf"] = record["uf"].upper()
    if record["transit_vote"] is None:
        record["transit_vote"] = "N"

    missing = [column for column in REQUIRED_FIELDS if record[column] is None]
    if missing:
        msg = f"missing required field(s): {', '.join(missing)}"
        raise RecordError(msg, "missing_field")
    return record


class TseCandidateVoteSource(BaseSourceProvider):
    """Pages through a TSE candidate vote file.

    Pages are served from a sequential cursor over the CSV: consecutive
    ``fetch_page`` calls continue where the previous one stopped, and a
    request for an earlier offset rewinds to the start of the file.

    Args:
        year: Election year of the file.
        uf: Optional state filter (two-letter code).
        office_code: Optional ``CD_CARGO`` filter.
        path: Local ``.csv`` or ``.zip`` file.
        url: Remote ``.zip`` to download when ``path`` is not given.
        file_name: Member to read when the archive holds several CSV files.
        data_dir: Scratch directory for downloads and extraction.
        timeout: HTTP timeout in seconds.
        read_chunk_rows: Rows pandas parses per chunk.
    """

    def __init__(
        self,
        *,
        year: int,
        uf: str | None = None,
        office_code: int | None = None,
        path: str | None = None,
        url: str | None = None,
        file_name: str | None = None,
        data_dir: str = "./data/imports",
        timeout: float = 60.0,
        read_chunk_rows: int = 10_000,
    ) -> None:
        if not path and not url:
            msg = "A TSE import needs either 'path' or 'url'"
            raise ValueError(msg)
        self.year = year
        self.uf = uf.upper() if uf else None
        self.office_code = office_code
        self.path = Path(path) if path else None
        self.url = url
        self.file_name = file_name
        self.timeout = timeout
        self.read_chunk_rows = read_chunk_rows
        self._data_dir = Path(data_dir)
        self._work_dir: Path | None = None
        self._csv_path: Path | None = None
        self._cursor: Iterator[SourceRow] | None = None
        self._position = 0

    @property
    def source_label(self) -> str:
        if self.path is not None:
            return self.path.name
        return Path(urlparse(self.url or "").path).name or (self.url or "tse")

    @property
    def csv_path(self) -> Path:
        if self._csv_path is None:
            msg = "Source not prepared"
            raise RuntimeError(msg)
        return self._csv_path

    async def prepare(self, on_phase: PhaseCallback) -> None:
        archive: Path | None = None
        if self.path is None:
            await on_phase("downloading", f"Downloading {self.source_label}")
            archive = await self._download()
        elif self.path.suffix.lower() == ".zip":
            archive = self.path
        elif not self.path.is_file():
            msg = f"Source file not found: {self.path}"
            raise SourceError(msg)
        else:
            self._csv_path = self.path

        if archive is not None:
            await on_phase("extracting", f"Extracting {archive.name}")
            self._csv_path = await asyncio.to_thread(self._extract, archive)

        header = await asyncio.to_thread(self._read_header)
        missing = [column for column in _REQUIRED_HEADERS if column not in header]
        if missing:
            msg = f"{self.csv_path.name} is not a TSE candidate vote file (missing {', '.join(missing)})"
            raise SourceError(msg)
        logger.info(f"TSE source ready: {self.csv_path} ({len(header)} columns)")

    async def count(self) -> int:
        return await asyncio.to_thread(lambda: sum(1 for _ in self._iter_rows()))

    async def fetch_page(self, offset: int, limit: int) -> list[SourceRow]:
        return await asyncio.to_thread(self._read_page, offset, limit)

    def to_record(self, row: SourceRow) -> PreparedRecord:
        record = map_candidate_vote(row.values)
        label = (
            f"{record['uf']}/{record['municipality_code']} zone {record['zone']} "
            f"office {record['office_code']} candidate {record['candidate_number']}"
        )
        return PreparedRecord(row_number=row.row_number, values=record, label=label)

    async def close(self) -> None:
        self._cursor = None
        if self._work_dir is not None:
            await asyncio.to_thread(shutil.rmtree, self._work_dir, True)
            self._work_dir = None

    def _scratch_dir(self) -> Path:
        if self._work_dir is None:
            self._work_dir = self._data_dir / f"tse-{uuid.uuid4().hex}"
            self._work_dir.mkdir(parents=True, exist_ok=True)
        return self._work_dir

    async def _download(self) -> Path:
        dest = self._scratch_dir() / "source.zip"
        part_path = dest.with_suffix(".zip.part")
        logger.info(f"Downloading TSE file {self.url}")
        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:  # noqa: SIM117
                async with client.stream("GET", self.url or "") as response:
                    response.raise_for_status()
                    with part_path.open("wb") as f:
                        async for chunk in response.aiter_bytes(chunk_size=65536):
                            f.write(chunk)
        except httpx.HTTPError as e:
            part_path.unlink(missing_ok=True)
            msg = f"Failed to download {self.url}: {e}"
            raise SourceError(msg) from e
        part_path.rename(dest)
        return dest

    def _extract(self, archive: Path) -> Path:
        try:
            with zipfile.ZipFile(archive) as zf:
                members = [
                    name
                    for name in zf.namelist()
                    if name.lower().endswith((".csv", ".txt")) and not name.startswith("__MACOSX")
                ]
                if not members:
                    msg = f"No CSV/TXT file found in {archive.name}"
                    raise SourceError(msg)
                member = self._select_member(members)
                logger.info(f"Extracting {member} from {archive.name} ({len(members)} candidate file(s))")
                return Path(zf.extract(member, self._scratch_dir()))
        except (zipfile.BadZipFile, OSError) as e:
            msg = f"Cannot extract {archive}: {e}"
            raise SourceError(msg) from e

    def _select_member(self, members: list[str]) -> str:
        if self.file_name:
            for name in members:
                if name == self.file_name or Path(name).name == self.file_name:
                    return name
            msg = f"Selected file not found in archive: {self.file_name}"
            raise SourceError(msg)
        if self.uf:
            for name in members:
                if Path(name).stem.upper().endswith(f"_{self.uf}"):
                    return name
        for name in members:
            if Path(name).stem.upper().endswith("_BRASIL"):
                return name
        return members[0]

    def _read_header(self) -> list[str]:
        try:
            frame = pd.read_csv(
                self.csv_path, sep=TSE_DELIMITER, encoding=TSE_ENCODING, dtype=str, keep_default_na=False, nrows=0
            )
        except (OSError, ValueError, pd.errors.ParserError) as e:
            msg = f"Cannot read {self.csv_path}: {e}"
            raise SourceError(msg) from e
        return [str(column).strip() for column in frame.columns]

    def _iter_rows(self) -> Iterator[SourceRow]:
        """Yield the rows that pass the state and office filters, in file order."""
        try:
            reader = pd.read_csv(
                self.csv_path,
                sep=TSE_DELIMITER,
                encoding=TSE_ENCODING,
                chunksize=self.read_chunk_rows,
                dtype=str,
                keep_default_na=False,
            )
            row_number = 0
            for chunk in reader:
                chunk.columns = chunk.columns.str.strip()
                for values in chunk.to_dict(orient="records"):
                    row_number += 1
                    if self._matches(values):
                        yield SourceRow(row_number=row_number, values=values)
        except (OSError, UnicodeDecodeError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            msg = f"Cannot read {self.csv_path}: {e}"
            raise SourceError(msg) from e

    def _matches(self, values: dict[str, Any]) -> bool:
        if self.uf and "SG_UF" in values and str(values["SG_UF"]).strip().upper() != self.uf:
            return False
        if self.office_code is not None:
            raw = str(values.get("CD_CARGO", "")).strip()
            if not raw.isdigit() or int(raw) != self.office_code:
                return False
        return True

    def _read_page(self, offset: int, limit: int) -> list[SourceRow]:
        if self._cursor is None or offset < self._position:
            self._cursor = self._iter_rows()
            self._position = 0
        skipped = sum(1 for _ in islice(self._cursor, offset - self._position))
        self._position += skipped
        if self._position < offset:
            return []
        rows = list(islice(self._cursor, limit))
        self._position += len(rows)
        return rows
