from __future__ import annotations

import io
from typing import Sequence

import pandas as pd

from .entities import Winner

EXCEL_COLUMNS = ["draw_time", "mode", "prize_id", "prize_name", "participant_id", "participant_name"]
EXCEL_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def winners_as_text(winners: Sequence[Winner]) -> str:
    """One line per winner, newest first, extra-draw winners flagged."""
    lines = []
    for winner in winners:
        prefix = "[Extra] " if winner.is_extra else ""
        lines.append(f"{prefix}{winner.prize.name}: {winner.participant.name}")
    return "\n".join(lines)


def winners_as_excel(winners: Sequence[Winner]) -> io.BytesIO:
    rows = [
        {
            "draw_time": winner.draw_time,
            "mode": "extra" if winner.is_extra else "regular",
            "prize_id": winner.prize.id,
            "prize_name": winner.prize.name,
            "participant_id": winner.participant.id,
            "participant_name": winner.participant.name,
        }
        for winner in winners
    ]
    df = pd.DataFrame(rows, columns=EXCEL_COLUMNS)

    buffer = io.BytesIO()
    # pandas picks the openpyxl engine for .xlsx output
    df.to_excel(buffer, index=False)
    buffer.seek(0)
    return buffer
