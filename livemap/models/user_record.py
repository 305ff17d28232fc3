"""
user_record.py — The external user document the engine reads.

Document shape in the realtime store:

  {
    "_id": "u_123",
    "language": "Japanese",                        ← system language
    "results": {
      "stage_01": {"maxScore": 1000, "clearRate": 50},
      "stage_02": {"maxScore": 0,    "clearRate": 0}
    }
  }

The engine never mutates a record. Result payloads are kept as raw dicts;
the score extractor decides what counts as a valid payload.
"""

from typing import Any, Mapping, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class UserRecord(BaseModel):
    """One user as observed in the realtime store."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    language: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("language", "systemLanguage", "locale"),
    )
    results: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_raw(cls, record_id: Any, raw: Any) -> "UserRecord":
        """
        Build a record from an untrusted document.

        Never raises for malformed content: a missing or non-mapping
        `results` becomes {}, a non-string language becomes None.
        """
        raw = raw if isinstance(raw, Mapping) else {}
        language = None
        for name in ("language", "systemLanguage", "locale"):
            value = raw.get(name)
            if isinstance(value, str) and value:
                language = value
                break
        results = raw.get("results")
        return cls(
            id=str(record_id),
            language=language,
            results=dict(results) if isinstance(results, Mapping) else {},
        )

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "UserRecord":
        """Build a record from a MongoDB document (id taken from `_id`)."""
        return cls.from_raw(doc.get("_id", doc.get("id", "")), doc)
