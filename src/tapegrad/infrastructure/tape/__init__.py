from ._operation_record import OperationRecord
from ._tape import Tape
from ._recording_context import RecordingContext

__all__ = [
    OperationRecord.__name__,
    Tape.__name__,
    RecordingContext.__name__,
]
