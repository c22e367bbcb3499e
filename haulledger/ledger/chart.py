"""Ledger-side loot chart rendering.

Draws one bar per participant (whole units, colour derived from the
participant address) and returns the PNG bytes served by
``ledger_generateChart``.
"""

from __future__ import annotations

import hashlib
import io

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402

from .models import LootRecord  # noqa: E402
from .units import BASE_UNIT  # noqa: E402

IMG_WIDTH = 600
IMG_HEIGHT = 400
DPI = 100


def address_color(address: str) -> tuple[float, float, float]:
    """Stable RGB colour for an address."""
    d = hashlib.sha256(address.lower().encode()).digest()
    return (d[0] / 255, d[1] / 255, d[2] / 255)


def render_chart(records: list[LootRecord]) -> bytes:
    """Render loot totals as a PNG bar chart."""
    values = [r.loot // BASE_UNIT for r in records]
    labels = [r.name for r in records]
    colors = [address_color(r.participant) for r in records]

    maxv = max(values, default=0)
    y_max = 20 if maxv < 10 else maxv + maxv // 8 + 16

    fig, ax = plt.subplots(figsize=(IMG_WIDTH / DPI, IMG_HEIGHT / DPI), dpi=DPI)
    try:
        positions = list(range(len(values)))
        ax.bar(positions, values, width=1.0, color=colors, align="edge")
        for i, v in enumerate(values):
            ax.text(i + 0.5, v + max(y_max / 40, 1), str(v), ha="center", va="bottom", fontsize=10)
        ax.set_xticks([i + 0.5 for i in positions])
        ax.set_xticklabels(labels)
        ax.set_xlim(0, max(len(values), 1))
        ax.set_ylim(0, y_max)

        buf = io.BytesIO()
        fig.savefig(buf, format="png", dpi=DPI)
    finally:
        plt.close(fig)
    return buf.getvalue()


__all__ = ["IMG_HEIGHT", "IMG_WIDTH", "address_color", "render_chart"]
