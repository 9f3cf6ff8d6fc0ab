# =============================================================================
# Data Source Adapters — INEGI, Banxico, SHCP
# =============================================================================
# Each adapter exposes a fetch function (network, raises on failure) and a
# pure parse function (raw payload → header + rows, or None when empty):
#   - inegi.py:   BIE/BISE indicator API (token required)
#   - banxico.py: SIE REST API (token required, optional date range)
#   - shcp.py:    public finance open-data CSVs (no token)
#
# Adapters raise SourceNotFoundError when the source reports an unknown id
# and SourceTransportError for everything else that went wrong on the wire.
# =============================================================================

from __future__ import annotations


class SourceNotFoundError(Exception):
    """The data source reports that the requested id does not exist."""

    def __init__(self, source: str, subject_id: str) -> None:
        super().__init__(f"{source}: unknown id {subject_id}")
        self.source = source
        self.subject_id = subject_id


class SourceTransportError(Exception):
    """Network failure, non-2xx status, timeout or undecodable payload."""


# (header, data rows) as returned by every parse function
ParsedSeries = tuple[list[str], list[list[str]]]
