from __future__ import annotations

import copy
from typing import Any, Dict

import pytest

from priceflow.models import Template
from priceflow.schema import load_template

BANNER: Dict[str, Any] = {
    "id": "tpl-banner",
    "shopId": "shop-1",
    "name": "Banner",
    "pricingFormula": "width_cm * height_cm / 10000 * unit_m2_price",
    "pricingMeta": {"unit_m2_price": 1500},
    "sections": [
        {
            "key": "size",
            "title": "Size",
            "builtInType": "SIZE",
            "order": 0,
            "fields": [
                {
                    "key": "width_cm",
                    "type": "NUMBER",
                    "label": "Width",
                    "required": True,
                    "order": 0,
                    "validation": {"min": 10, "max": 500},
                },
                {
                    "key": "height_cm",
                    "type": "NUMBER",
                    "label": "Height",
                    "required": True,
                    "order": 1,
                    "validation": {"min": 10, "max": 500},
                },
            ],
        }
    ],
}

EXPRESS_SECTION: Dict[str, Any] = {
    "key": "express",
    "title": "Production time",
    "builtInType": "EXPRESS",
    "order": 5,
    "fields": [
        {"key": "express", "type": "CHECKBOX", "label": "Express", "useInFormula": False},
    ],
}

STICKER: Dict[str, Any] = {
    "id": "tpl-sticker",
    "name": "Sticker",
    "pricingFormula": "width_cm * height_cm * cm2_price + material + lamination * lamination_price + extras",
    "pricingMeta": {"cm2_price": 0.01, "lamination_price": 3, "currency": "HUF"},
    "sections": [
        {
            "key": "size",
            "title": "Size",
            "builtInType": "SIZE",
            "order": 0,
            "fields": [
                {
                    "key": "width_cm",
                    "type": "NUMBER",
                    "label": "Width",
                    "required": True,
                    "order": 0,
                    "validation": {"min": 1, "max": 100},
                },
                {
                    "key": "height_cm",
                    "type": "NUMBER",
                    "label": "Height",
                    "required": True,
                    "order": 1,
                    "validation": {"min": 1, "max": 100},
                },
            ],
        },
        {
            "key": "finish",
            "title": "Finish",
            "order": 1,
            "fields": [
                {
                    "key": "material",
                    "type": "SELECT",
                    "label": "Material",
                    "required": True,
                    "order": 0,
                    "options": [
                        {"value": "paper", "label": "Paper"},
                        {"value": "vinyl", "label": "Vinyl", "price": 2},
                        {"value": "holo", "label": "Holographic", "price": 5},
                    ],
                },
                {
                    "key": "foil_color",
                    "type": "RADIO",
                    "label": "Foil colour",
                    "required": True,
                    "useInFormula": False,
                    "order": 1,
                    "options": [{"value": "gold", "price": 2}, {"value": "silver", "price": 1}],
                    "conditionalRules": {
                        "showIf": {"field": "material", "operator": "equals", "value": "holo"}
                    },
                },
                {"key": "lamination", "type": "CHECKBOX", "label": "Lamination", "order": 2},
                {
                    "key": "extras",
                    "type": "EXTRAS",
                    "label": "Extras",
                    "order": 3,
                    "options": [
                        {"value": "cut", "label": "Contour cut", "price": 1.5},
                        {"value": "rounded", "label": "Rounded corners", "price": 0.5},
                        {"value": "box", "label": "Gift box", "price": 4},
                    ],
                },
            ],
        },
        {
            "key": "notes",
            "title": "Notes",
            "builtInType": "NOTES",
            "order": 2,
            "fields": [
                {
                    "key": "note",
                    "type": "TEXT",
                    "label": "Note",
                    "useInFormula": False,
                    "validation": {"maxLength": 20},
                }
            ],
        },
    ],
}

STICKER_INPUTS: Dict[str, Any] = {
    "width_cm": 10,
    "height_cm": 10,
    "material": "vinyl",
    "lamination": True,
    "extras": ["cut", "box"],
}


@pytest.fixture
def banner_draft() -> Dict[str, Any]:
    return copy.deepcopy(BANNER)


@pytest.fixture
def banner_template(banner_draft: Dict[str, Any]) -> Template:
    return load_template(banner_draft)


@pytest.fixture
def express_banner_draft(banner_draft: Dict[str, Any]) -> Dict[str, Any]:
    banner_draft["hasExpressOption"] = True
    banner_draft["expressMultiplier"] = 1.5
    banner_draft["expressLabel"] = "Express (24h)"
    banner_draft["normalLabel"] = "Normal (3 days)"
    banner_draft["sections"].append(copy.deepcopy(EXPRESS_SECTION))
    return banner_draft


@pytest.fixture
def sticker_draft() -> Dict[str, Any]:
    return copy.deepcopy(STICKER)


@pytest.fixture
def sticker_template(sticker_draft: Dict[str, Any]) -> Template:
    return load_template(sticker_draft)


@pytest.fixture
def sticker_inputs() -> Dict[str, Any]:
    return copy.deepcopy(STICKER_INPUTS)
