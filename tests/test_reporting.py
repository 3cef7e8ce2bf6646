from __future__ import annotations

from priceflow.composer import compose_price
from priceflow.reporting import breakdown_frame, make_summary_text


def test_breakdown_frame(sticker_template, sticker_inputs):
    breakdown = compose_price(sticker_template, sticker_inputs, 2)
    frame = breakdown_frame(breakdown)
    assert list(frame.columns) == ["LABEL", "KIND", "VALUE", "FORMULA"]
    assert len(frame) == len(breakdown.lines)
    assert frame["KIND"].tolist() == ["base", "surcharge", "surcharge", "surcharge", "total"]
    assert frame.iloc[-1]["VALUE"] == 23.0


def test_summary_text(banner_template):
    breakdown = compose_price(banner_template, {"width_cm": 100, "height_cm": 50}, 1)
    text = make_summary_text(breakdown)
    assert text.startswith("Total for 1 pcs (normal production): 750.00.")
    assert "Calculated unit price" in text
    assert "quantity discount 0%" in text
