from app.schemas.receipt import (  # noqa: F401
    Confidence,
    DeleteResponse,
    ProcessingStatus,
    Receipt,
    ReceiptCreate,
    ReceiptFilter,
    ReceiptPage,
    ReceiptSummary,
    ReceiptUpdate,
    SortField,
    SortOrder,
)
from app.schemas.capture import (  # noqa: F401
    AnalyzeRequest,
    DraftForm,
    ExtractionResult,
    RawImage,
    UploadResult,
)
