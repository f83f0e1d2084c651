"""Program-log event decoding backed by an Anchor IDL."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from anchorpy import Coder, EventParser, Idl
from solders.pubkey import Pubkey

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecodedEvent:
    """A named event decoded from program log lines."""

    name: str
    data: Mapping[str, Any] = field(default_factory=dict)


class LogDecoder(Protocol):
    """Turns raw program log lines into decoded events.

    Implementations raise when the lines do not match the program's log grammar.
    """

    def decode_logs(self, log_lines: Sequence[str]) -> list[DecodedEvent]: ...


def _to_mapping(data: Any) -> dict[str, Any]:
    if isinstance(data, Mapping):
        items = data.items()
    elif hasattr(data, "__dict__"):
        items = vars(data).items()
    else:
        raise TypeError(f"Cannot convert event payload of type {type(data).__name__}")
    # construct.Container carries private bookkeeping keys
    return {str(k): v for k, v in items if not str(k).startswith("_")}


class AnchorEventDecoder:
    """Decodes Anchor `Program data:` log lines using the program's IDL.

    Example:
        ```python
        decoder = AnchorEventDecoder.from_idl_file(
            Path("idl/cykura.json"),
            program_address="cysPXAjehMpVKUapzbMCCnpFxUFFryEWEaLgnb9NrR8",
        )
        events = decoder.decode_logs(record.log_lines)
        ```
    """

    def __init__(self, idl: Idl, program_address: str) -> None:
        self._program_id = Pubkey.from_string(program_address)
        self._parser = EventParser(self._program_id, Coder(idl))

    @classmethod
    def from_idl_file(cls, path: Path, *, program_address: str) -> AnchorEventDecoder:
        raw = path.read_text(encoding="utf-8")
        logger.info("Loaded program IDL from %s", path)
        return cls(Idl.from_json(raw), program_address)

    def decode_logs(self, log_lines: Sequence[str]) -> list[DecodedEvent]:
        decoded: list[DecodedEvent] = []

        def on_event(event: Any) -> None:
            decoded.append(DecodedEvent(name=str(event.name), data=_to_mapping(event.data)))

        self._parser.parse_logs(list(log_lines), on_event)
        return decoded
