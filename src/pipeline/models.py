"""Typed results passed between the fetch, extract and classify stages."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple


class RunMode(str, Enum):
    FRESH = 'fresh'
    INCREMENTAL = 'incremental'
    RETRY = 'retry'
    SAMPLE = 'sample'


class Label(str, Enum):
    OVERPRICED = 'overpriced'
    INSUFFICIENT_DATA = 'insufficient_data'
    NORMAL = 'normal'


class Confidence(str, Enum):
    HIGH = 'high'
    MEDIUM = 'medium'
    LOW = 'low'


class FailureKind(str, Enum):
    """Why a document produced no usable extraction."""
    ILLEGIBLE = 'illegible'
    MALFORMED = 'malformed'
    SERVICE_ERROR = 'service_error'


@dataclass(frozen=True)
class LineItem:
    description: str
    quantity: float
    unit_price: float

    @property
    def subtotal(self) -> float:
        return self.quantity * self.unit_price

    def to_dict(self) -> Dict:
        # Same keys the extraction prompt asks for
        return {
            'descripcion': self.description,
            'cantidad': self.quantity,
            'precio_unitario': self.unit_price,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'LineItem':
        return cls(
            description=data['descripcion'],
            quantity=data['cantidad'],
            unit_price=data['precio_unitario'],
        )


@dataclass(frozen=True)
class FetchResult:
    """Outcome of fetching all documents for one code."""
    code: str
    success: bool
    document_paths: Tuple[str, ...] = ()
    error: Optional[str] = None
    attempts: int = 1

    @classmethod
    def ok(cls, code: str, document_paths, attempts: int = 1) -> 'FetchResult':
        return cls(code=code, success=True, document_paths=tuple(document_paths), attempts=attempts)

    @classmethod
    def failed(cls, code: str, error: str, attempts: int = 1) -> 'FetchResult':
        return cls(code=code, success=False, error=error, attempts=attempts)


@dataclass(frozen=True)
class ExtractionResult:
    """Outcome of extracting line items from one document."""
    document_id: str
    success: bool
    items: Tuple[LineItem, ...] = ()
    total_amount: Optional[float] = None
    error: Optional[str] = None
    failure_kind: Optional[FailureKind] = None

    @classmethod
    def ok(cls, document_id: str, items, total_amount: Optional[float] = None) -> 'ExtractionResult':
        return cls(document_id=document_id, success=True, items=tuple(items), total_amount=total_amount)

    @classmethod
    def failed(cls, document_id: str, kind: FailureKind, error: str) -> 'ExtractionResult':
        return cls(document_id=document_id, success=False, error=error, failure_kind=kind)


@dataclass(frozen=True)
class Classification:
    code: str
    label: Label
    confidence: Confidence
    items: Tuple[LineItem, ...]
    total_amount: float
    documents_considered: int
    processed_at: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict:
        return {
            'code': self.code,
            'label': self.label.value,
            'confidence': self.confidence.value,
            'items': [item.to_dict() for item in self.items],
            'total_amount': self.total_amount,
            'documents_considered': self.documents_considered,
            'processed_at': self.processed_at,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Classification':
        return cls(
            code=data['code'],
            label=Label(data['label']),
            confidence=Confidence(data['confidence']),
            items=tuple(LineItem.from_dict(item) for item in data.get('items', [])),
            total_amount=data.get('total_amount', 0),
            documents_considered=data.get('documents_considered', 0),
            processed_at=data.get('processed_at', ''),
        )


@dataclass
class CodeOutcome:
    """Terminal state of one code within a run (COMPLETED or FAILED)."""
    code: str
    success: bool
    classification: Optional[Classification] = None
    documents: int = 0
    output_path: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 0

    def to_manifest_entry(self) -> Dict:
        entry = {
            'code': self.code,
            'success': self.success,
            'documents': self.documents,
            'items': len(self.classification.items) if self.classification else 0,
            'output': self.output_path,
        }
        if self.classification:
            entry['label'] = self.classification.label.value
            entry['confidence'] = self.classification.confidence.value
        if self.error:
            entry['error'] = self.error
            entry['attempts'] = self.attempts
        return entry


@dataclass
class RunSummary:
    mode: RunMode
    codes_in_input: int
    resolved: int
    outcomes: List[CodeOutcome] = field(default_factory=list)
    interrupted: bool = False
    registry_total: int = 0

    @property
    def completed(self) -> List[CodeOutcome]:
        return [o for o in self.outcomes if o.success]

    @property
    def failed(self) -> List[CodeOutcome]:
        return [o for o in self.outcomes if not o.success]

    @property
    def skipped(self) -> int:
        """Resolved codes never started (cancelled before they ran)."""
        return self.resolved - len(self.outcomes)

    def label_counts(self) -> Dict[str, int]:
        counts = {label.value: 0 for label in Label}
        for outcome in self.completed:
            counts[outcome.classification.label.value] += 1
        return counts
