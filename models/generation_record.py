from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass
class GenerationRecord:
    """In-memory representation of a row in the GENERATION table.

    Attributes:
        request_id: Token of the generate() call that produced the outcome.
        quality: Quality tier value (standard or studio).
        model: Model selector value.
        credit_cost: Credits the generation was expected to cost.
        phase: Terminal phase the session settled in.
        error_kind: Error kind value when the generation failed.
        result_ref: Result image reference when the generation succeeded.
        created_at: Unix timestamp (seconds) when the row was inserted.
        id: Primary key (None for new records).
    """

    request_id: str
    quality: str
    model: str
    credit_cost: int
    phase: str
    error_kind: Optional[str] = None
    result_ref: Optional[str] = None
    created_at: Optional[int] = None
    id: Optional[int] = None
