"""Test data builders shared by the unit tests (on the pytest pythonpath)."""

import asyncio

from domain.schemas import SelectedLabel, TaxonomyNode


async def no_sleep(_seconds: float) -> None:
    # Yield once so concurrent tasks interleave, without waiting
    await asyncio.sleep(0)


def isco_fixtures() -> dict:
    return {
        "taxonomies": [
            {
                "key": "isco",
                "displayName": "ISCO-08",
                "maxDepth": 3,
                "levelNames": {"1": "Major group", "2": "Sub-major group"},
                "lastAISyncStatus": "completed",
            },
            {"key": "sentiment", "maxDepth": 2, "lastAISyncStatus": "success"},
            {"key": "legacy", "maxDepth": 2, "isActive": False},
        ],
        "nodes": {
            "isco": [
                {"code": "1", "label": "Managers", "level": 1},
                {"code": "2", "label": "Professionals", "level": 1},
                {"code": "11", "label": "Chief executives", "level": 2, "parentCode": "1"},
                {"code": "12", "label": "Administrative and commercial managers", "level": 2, "parentCode": "1"},
                {"code": "21", "label": "Science professionals", "level": 2, "parentCode": "2"},
                {"code": "121", "label": "Business services managers", "level": 3, "parentCode": "12"},
                {"code": "123", "label": "Sales managers", "level": 3, "parentCode": "12", "isLeaf": True},
                {"code": "211", "label": "Physical scientists", "level": 3, "parentCode": "21"},
            ],
            "sentiment": [
                {"code": "P", "label": "Positive", "level": 1},
                {"code": "X", "label": "Neutral", "level": 1, "isLeaf": True},
                {"code": "P1", "label": "Mildly positive", "level": 2, "parentCode": "P"},
            ],
        },
        "records": [
            {"id": "s1", "fields": {"text": "I run a sales team."}},
            {
                "id": "s2",
                "fields": {"text": "I manage sales."},
                "annotations": [
                    {"taxonomyKey": "isco", "level": 1, "nodeCode": "1", "source": "ai", "confidenceScore": 0.9},
                    {"taxonomyKey": "isco", "level": 2, "nodeCode": "12", "source": "ai", "confidenceScore": 0.8},
                    {"taxonomyKey": "isco", "level": 3, "nodeCode": "123", "source": "ai", "confidenceScore": 0.7},
                ],
            },
            {"id": "s3", "fields": {"text": "I teach physics."}},
        ],
    }


def node(code: str, level: int, parent: str | None = None, *, leaf: bool = False, label: str = "") -> TaxonomyNode:
    return TaxonomyNode(code=code, level=level, parent_code=parent, is_leaf=leaf, label=label or code)


def ai_label(code: str, level: int, *, leaf: bool = False, key: str = "isco") -> SelectedLabel:
    return SelectedLabel(level=level, node_code=code, taxonomy_key=key, is_leaf=leaf, source="ai")


def user_label(code: str, level: int, *, leaf: bool = False, key: str = "isco") -> SelectedLabel:
    return SelectedLabel(level=level, node_code=code, taxonomy_key=key, is_leaf=leaf, source="user")
